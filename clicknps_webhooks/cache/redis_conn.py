import os
import redis

REDIS_URL = os.getenv("REDIS_URL")
if REDIS_URL is None:
    raise ValueError("REDIS_URL environment variable not set")

# Redis connection for the business settings cache
redis_conn_global = redis.from_url(REDIS_URL, decode_responses=True)
