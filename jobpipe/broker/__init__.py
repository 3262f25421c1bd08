"""
Queue broker module.
Contains the broker protocol and its Redis implementation.
"""

from jobpipe.broker.base import QueueBroker
from jobpipe.broker.redis import RedisQueueBroker

__all__ = ["QueueBroker", "RedisQueueBroker"]
