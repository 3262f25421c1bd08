"""
jobpipe

An asynchronous job dispatch pipeline: an HTTP API persists submitted jobs and
pushes their ids onto a Redis queue, and a pool of workers pulls, executes and
records the outcome of each job with at-least-once delivery.
"""

__version__ = "1.0.0"
