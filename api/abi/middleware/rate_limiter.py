"""Token bucket rate limiter backed by a Redis Lua script.

The bucket is refilled and consumed atomically on the Redis side. Read and
write paths use separate buckets. Authenticated callers are keyed by user
id; anonymous readers by client address.

Key format: rl:{subject}:{bucket_type}
Bucket types: "read" or "write"
"""
import time
from typing import Annotated, Optional

import redis.asyncio as aioredis
from fastapi import Depends, HTTPException, Request

from abi.config import Settings, settings
from abi.dependencies import CurrentUser, OptionalUser, RedisClient
from abi.models.user import User

# KEYS[1] = rate limit key
# ARGV[1] = max_tokens (bucket capacity)
# ARGV[2] = refill_rate (tokens per second)
# ARGV[3] = now (Unix timestamp, float)
#
# Returns 1 if a token was consumed, 0 if the bucket is empty
RATE_LIMIT_LUA = """
local key = KEYS[1]
local max_tokens = tonumber(ARGV[1])
local refill_rate = tonumber(ARGV[2])
local now = tonumber(ARGV[3])

local data = redis.call('HGETALL', key)
local tokens = max_tokens
local last_refill = now

if #data > 0 then
    for i = 1, #data, 2 do
        if data[i] == 'tokens' then
            tokens = tonumber(data[i+1])
        elseif data[i] == 'last_refill' then
            last_refill = tonumber(data[i+1])
        end
    end
end

local new_tokens = tokens + (now - last_refill) * refill_rate
if new_tokens > max_tokens then
    new_tokens = max_tokens
end

local allowed = 0
if new_tokens >= 1 then
    new_tokens = new_tokens - 1
    allowed = 1
end

redis.call('HSET', key, 'tokens', new_tokens, 'last_refill', now)
redis.call('EXPIRE', key, 120)

return allowed
"""


def _subject(user: Optional[User], request: Request) -> str:
    if user is not None:
        return str(user.id)
    host = request.client.host if request.client else "unknown"
    return f"ip:{host}"


async def check_rate_limit(
    subject: str,
    redis_client: aioredis.Redis,
    bucket_type: str,
    app_settings: Settings,
) -> None:
    """Consume a token from the subject's bucket.

    Raises HTTP 429 with a Retry-After header if the bucket is empty.
    """
    if not app_settings.rate_limit_enabled:
        return

    if bucket_type == "read":
        max_tokens = app_settings.rate_limit_read_per_minute
    else:
        max_tokens = app_settings.rate_limit_write_per_minute

    allowed = await redis_client.eval(
        RATE_LIMIT_LUA,
        1,
        f"rl:{subject}:{bucket_type}",
        max_tokens,
        max_tokens / 60.0,  # full refill in one minute
        time.time(),
    )

    if not allowed:
        raise HTTPException(
            status_code=429,
            detail="Rate limit exceeded",
            headers={"Retry-After": "60"},
        )


async def read_rate_limit(
    request: Request,
    user: OptionalUser,
    redis_client: RedisClient,
) -> None:
    await check_rate_limit(_subject(user, request), redis_client, "read", settings)


async def write_rate_limit(
    request: Request,
    user: CurrentUser,
    redis_client: RedisClient,
) -> None:
    await check_rate_limit(_subject(user, request), redis_client, "write", settings)


# Inject into endpoint signatures; tests override read_rate_limit/write_rate_limit
ReadRateLimit = Annotated[None, Depends(read_rate_limit)]
WriteRateLimit = Annotated[None, Depends(write_rate_limit)]
