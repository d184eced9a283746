"""Litestar application factory for the billflow admin dashboard."""
from pathlib import Path

from litestar import Litestar
from litestar.contrib.jinja import JinjaTemplateEngine
from litestar.template.config import TemplateConfig

from litestar.di import Provide
from litestar.datastructures import State

from billflow.client import QueueClient
from billflow.notifications.store import BillStore
from .controllers.core import CoreController
from .controllers.jobs import JobsController


async def get_client(state: State) -> QueueClient:
    return state.client


async def get_bills(state: State) -> BillStore:
    return state.bills


def create_dashboard_app(client: QueueClient, bills: BillStore, debug: bool = False) -> Litestar:
    """Create the Litestar application for the dashboard.

    Args:
        client: Queue client the operator actions run against.
        bills: Data store used to look up tasks for manual triggers.
        debug: Enable Litestar debug mode.

    Returns:
        A Litestar application, mountable under any path prefix.
    """
    here = Path(__file__).parent
    templates_path = here / "templates"

    return Litestar(
        route_handlers=[CoreController, JobsController],
        template_config=TemplateConfig(
            directory=templates_path,
            engine=JinjaTemplateEngine,
        ),
        state=State({"client": client, "bills": bills}),
        dependencies={"client": Provide(get_client), "bills": Provide(get_bills)},
        debug=debug,
    )
