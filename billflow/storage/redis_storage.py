# billflow/storage/redis_storage.py
import redis
import logging
from typing import Callable, Collection, Optional, List
from datetime import datetime, UTC, timedelta
import time

from .base import JobStorage
from ..common.exceptions import JobNotFoundError, InvalidJobStateError
from ..common.job import Job
from ..common.states import (
    BaseState,
    ActiveState,
    DelayedState,
    FailedState,
    WaitingState,
)
from ..serialization.base import BaseSerializer
from ..serialization.json_serializer import JsonSerializer

logger = logging.getLogger(__name__)

# Keys:
#   {prefix}:job:{id}        hash with the job fields
#   {prefix}:delayed         sorted set, score = enqueue_at in epoch millis
#   {prefix}:queue:{queue}   waiting list (LPUSH in, RPOP out)
#   {prefix}:active          list of claimed job ids
#   {prefix}:jobs:{state}    set of ids per state, for listing and counts

ADD_SCRIPT = """
    local job_key = KEYS[1]
    local job_id = ARGV[1]
    local state_name = ARGV[2]
    local score = ARGV[3]
    local prefix = ARGV[4]
    local queue = ARGV[5]

    local current = redis.call('HGET', job_key, 'state_name')
    if current and current ~= 'completed' and current ~= 'failed' then
        return 0
    end
    if current then
        redis.call('SREM', prefix .. ':jobs:' .. current, job_id)
        redis.call('DEL', job_key)
    end

    for i = 6, #ARGV, 2 do
        redis.call('HSET', job_key, ARGV[i], ARGV[i + 1])
    end

    if state_name == 'delayed' then
        redis.call('ZADD', prefix .. ':delayed', score, job_id)
    else
        redis.call('LPUSH', prefix .. ':queue:' .. queue, job_id)
    end
    redis.call('SADD', prefix .. ':jobs:' .. state_name, job_id)
    return 1
"""

SET_STATE_SCRIPT = """
    local job_key = KEYS[1]
    local job_id = ARGV[1]
    local new_state_name = ARGV[2]
    local new_state_data = ARGV[3]
    local expected_old_state = ARGV[4]
    local prefix = ARGV[5]
    local score = ARGV[6]
    local enqueue_at = ARGV[7]
    local last_error = ARGV[8]

    local current_state = redis.call('HGET', job_key, 'state_name')
    if not current_state then
        return 0
    end
    if expected_old_state ~= '' and current_state ~= expected_old_state then
        return 0
    end

    local queue = redis.call('HGET', job_key, 'queue')

    -- Leave the structure that holds the old state
    if current_state == 'delayed' then
        redis.call('ZREM', prefix .. ':delayed', job_id)
    elseif current_state == 'waiting' then
        redis.call('LREM', prefix .. ':queue:' .. queue, 0, job_id)
    elseif current_state == 'active' then
        redis.call('LREM', prefix .. ':active', 0, job_id)
    end
    redis.call('SREM', prefix .. ':jobs:' .. current_state, job_id)

    redis.call('HSET', job_key, 'state_name', new_state_name, 'state_data', new_state_data)
    if enqueue_at ~= '' then
        redis.call('HSET', job_key, 'enqueue_at', enqueue_at)
    end
    if last_error ~= '' then
        redis.call('HSET', job_key, 'last_error', last_error)
    else
        redis.call('HDEL', job_key, 'last_error')
    end

    if new_state_name == 'delayed' then
        redis.call('ZADD', prefix .. ':delayed', score, job_id)
    elseif new_state_name == 'waiting' then
        redis.call('LPUSH', prefix .. ':queue:' .. queue, job_id)
    elseif new_state_name == 'active' then
        redis.call('LPUSH', prefix .. ':active', job_id)
    end
    redis.call('SADD', prefix .. ':jobs:' .. new_state_name, job_id)
    return 1
"""

CLAIM_SCRIPT = """
    local prefix = ARGV[1]
    local state_data = ARGV[2]

    for i = 3, #ARGV do
        local job_id = redis.call('RPOP', prefix .. ':queue:' .. ARGV[i])
        if job_id then
            local job_key = prefix .. ':job:' .. job_id
            redis.call('SREM', prefix .. ':jobs:waiting', job_id)
            redis.call('HSET', job_key, 'state_name', 'active', 'state_data', state_data)
            redis.call('HINCRBY', job_key, 'attempts', 1)
            redis.call('LPUSH', prefix .. ':active', job_id)
            redis.call('SADD', prefix .. ':jobs:active', job_id)
            return job_id
        end
    end
    return false
"""

PROMOTE_DUE_SCRIPT = """
    local now = ARGV[1]
    local prefix = ARGV[2]
    local state_data = ARGV[3]
    local limit = tonumber(ARGV[4])

    local ids = redis.call('ZRANGEBYSCORE', prefix .. ':delayed', '-inf', now, 'LIMIT', 0, limit)
    for _, job_id in ipairs(ids) do
        local job_key = prefix .. ':job:' .. job_id
        local queue = redis.call('HGET', job_key, 'queue')
        redis.call('ZREM', prefix .. ':delayed', job_id)
        if queue then
            redis.call('LPUSH', prefix .. ':queue:' .. queue, job_id)
            redis.call('HSET', job_key, 'state_name', 'waiting', 'state_data', state_data)
            redis.call('SREM', prefix .. ':jobs:delayed', job_id)
            redis.call('SADD', prefix .. ':jobs:waiting', job_id)
        end
    end
    return ids
"""

REMOVE_SCRIPT = """
    local job_key = KEYS[1]
    local job_id = ARGV[1]
    local prefix = ARGV[2]
    local allowed_states = ARGV[3]

    local current_state = redis.call('HGET', job_key, 'state_name')
    if not current_state then
        return 0
    end
    if allowed_states ~= '' then
        local allowed = false
        for state in string.gmatch(allowed_states, '[^,]+') do
            if state == current_state then
                allowed = true
            end
        end
        if not allowed then
            return 0
        end
    end

    local queue = redis.call('HGET', job_key, 'queue')
    redis.call('ZREM', prefix .. ':delayed', job_id)
    if queue then
        redis.call('LREM', prefix .. ':queue:' .. queue, 0, job_id)
    end
    redis.call('LREM', prefix .. ':active', 0, job_id)
    redis.call('SREM', prefix .. ':jobs:' .. current_state, job_id)
    redis.call('DEL', job_key)
    return 1
"""


class RedisStorage(JobStorage):
    def __init__(
        self,
        connection_pool=None,
        redis_client=None,
        serializer: Optional[BaseSerializer] = None,
        prefix: str = "billflow",
        clock: Optional[Callable[[], datetime]] = None,
        poll_interval: float = 0.05,
    ):
        if redis_client:
            self.redis_client = redis_client
            if not redis_client.get_connection_kwargs().get("decode_responses", False):
                self.redis_client = redis.Redis(
                    connection_pool=self.redis_client.connection_pool,
                    decode_responses=True,
                )
        elif connection_pool:
            self.redis_client = redis.Redis(
                connection_pool=connection_pool, decode_responses=True
            )
        else:
            self.redis_client = redis.Redis(
                host="localhost", port=6379, db=0, decode_responses=True
            )

        self.serializer = serializer or JsonSerializer()
        self.prefix = prefix
        self._clock = clock or (lambda: datetime.now(UTC))
        self._poll_interval = poll_interval

        self.add_script = self.redis_client.register_script(ADD_SCRIPT)
        self.set_job_state_script = self.redis_client.register_script(SET_STATE_SCRIPT)
        self.claim_script = self.redis_client.register_script(CLAIM_SCRIPT)
        self.promote_due_script = self.redis_client.register_script(PROMOTE_DUE_SCRIPT)
        self.remove_script = self.redis_client.register_script(REMOVE_SCRIPT)

    @classmethod
    def from_url(cls, url: str, **kwargs) -> "RedisStorage":
        return cls(redis_client=redis.Redis.from_url(url, decode_responses=True), **kwargs)

    def connect(self) -> None:
        self.redis_client.ping()

    def close(self) -> None:
        self.redis_client.close()

    def _job_key(self, job_id: str) -> str:
        return f"{self.prefix}:job:{job_id}"

    def _millis(self, value: datetime) -> int:
        return int(value.timestamp() * 1000)

    def _serialize_job_for_storage(self, job: Job) -> dict:
        job_dict = {
            "id": job.id,
            "payload": self.serializer.serialize_payload(job.payload),
            "state_name": job.state_name,
            "state_data": self.serializer.serialize_state_data(job.state_data),
            "queue": job.queue,
            "attempts": str(job.attempts),
            "max_attempts": str(job.max_attempts),
            "created_at": job.created_at.isoformat(),
            "created_ts": str(job.created_at.timestamp()),
            "remove_on_complete": "1" if job.remove_on_complete else "0",
        }
        if job.enqueue_at:
            job_dict["enqueue_at"] = job.enqueue_at.isoformat()
        if job.last_error:
            job_dict["last_error"] = job.last_error
        return job_dict

    def _deserialize_job_from_storage(self, job_data: dict) -> Job:
        enqueue_at = job_data.get("enqueue_at")
        return Job(
            id=job_data["id"],
            payload=self.serializer.deserialize_payload(job_data["payload"]),
            state_name=job_data["state_name"],
            state_data=self.serializer.deserialize_state_data(job_data.get("state_data")),
            queue=job_data["queue"],
            attempts=int(job_data.get("attempts", 0)),
            max_attempts=int(job_data.get("max_attempts", 0)),
            created_at=datetime.fromisoformat(job_data["created_at"]),
            enqueue_at=datetime.fromisoformat(enqueue_at) if enqueue_at else None,
            last_error=job_data.get("last_error"),
            remove_on_complete=job_data.get("remove_on_complete", "1") == "1",
        )

    def add(self, job: Job) -> bool:
        score = self._millis(job.enqueue_at) if job.enqueue_at else 0
        fields: List[str] = []
        for key, value in self._serialize_job_for_storage(job).items():
            fields.extend([key, value])
        result = self.add_script(
            keys=[self._job_key(job.id)],
            args=[job.id, job.state_name, score, self.prefix, job.queue, *fields],
        )
        return result == 1

    def set_job_state(
        self, job_id: str, state: BaseState, expected_old_state: Optional[str] = None
    ) -> bool:
        score = ""
        enqueue_at = ""
        if isinstance(state, DelayedState):
            score = self._millis(state.enqueue_at)
            enqueue_at = state.enqueue_at.isoformat()
        last_error = state.exception_message if isinstance(state, FailedState) else ""
        result = self.set_job_state_script(
            keys=[self._job_key(job_id)],
            args=[
                job_id,
                state.name,
                self.serializer.serialize_state_data(state.serialize_data()),
                expected_old_state or "",
                self.prefix,
                score,
                enqueue_at,
                last_error,
            ],
        )
        return result == 1

    def dequeue(
        self,
        queues: List[str],
        timeout_seconds: float,
        server_id: str = "server-redis",
        worker_id: str = "worker-1",
    ) -> Optional[Job]:
        if not queues:
            return None

        deadline = time.monotonic() + timeout_seconds
        while True:
            self.promote_due_jobs()
            active_state = ActiveState(server_id, worker_id, created_at=self._clock())
            job_id = self.claim_script(
                args=[
                    self.prefix,
                    self.serializer.serialize_state_data(active_state.serialize_data()),
                    *queues,
                ]
            )
            if job_id:
                return self.get_job_data(job_id)
            if time.monotonic() >= deadline:
                return None
            time.sleep(self._poll_interval)

    def acknowledge(self, job_id: str) -> None:
        self.redis_client.lrem(f"{self.prefix}:active", 0, job_id)

    def promote(self, job_id: str) -> bool:
        waiting_state = WaitingState(reason="Promoted", created_at=self._clock())
        if self.set_job_state(job_id, waiting_state, expected_old_state=DelayedState.NAME):
            return True
        current = self.redis_client.hget(self._job_key(job_id), "state_name")
        if current is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        if current == WaitingState.NAME:
            return False
        raise InvalidJobStateError(f"Job {job_id} is {current} and cannot be promoted")

    def promote_due_jobs(self, limit: int = 100) -> List[str]:
        now = self._clock()
        ids = self.promote_due_script(
            args=[
                self._millis(now),
                self.prefix,
                self.serializer.serialize_state_data(
                    WaitingState(created_at=now).serialize_data()
                ),
                limit,
            ]
        )
        return list(ids or [])

    def remove(self, job_id: str, states: Optional[Collection[str]] = None) -> bool:
        result = self.remove_script(
            keys=[self._job_key(job_id)],
            args=[job_id, self.prefix, ",".join(states) if states else ""],
        )
        return result == 1

    def get_job_data(self, job_id: str) -> Optional[Job]:
        job_data = self.redis_client.hgetall(self._job_key(job_id))
        if not job_data:
            return None
        return self._deserialize_job_from_storage(job_data)

    def get_job_ids_by_state(
        self, state_name: str, start: int = 0, count: int = -1
    ) -> List[str]:
        state_key = f"{self.prefix}:jobs:{state_name}"
        by = f"{self.prefix}:job:*->created_ts"
        if count < 0:
            return self.redis_client.sort(state_key, by=by, desc=True)[start:]
        return self.redis_client.sort(state_key, start=start, num=count, by=by, desc=True)

    def get_state_job_count(self, state_name: str) -> int:
        return self.redis_client.scard(f"{self.prefix}:jobs:{state_name}")

    def recover_stuck_jobs(self, max_age_seconds: int, limit: int = 100) -> List[str]:
        cutoff = self._clock() - timedelta(seconds=max_age_seconds)
        recovered: List[str] = []
        for job_id in self.redis_client.lrange(f"{self.prefix}:active", 0, -1):
            if len(recovered) >= limit:
                break
            job = self.get_job_data(job_id)
            if job is None:
                self.acknowledge(job_id)
                continue
            started_at = job.state_data.get("created_at")
            if started_at and datetime.fromisoformat(started_at) > cutoff:
                continue
            waiting_state = WaitingState(reason="Recovered stalled job", created_at=self._clock())
            if self.set_job_state(job_id, waiting_state, expected_old_state=ActiveState.NAME):
                logger.warning(f"Recovered stalled job {job_id}")
                recovered.append(job_id)
        return recovered
