"""Infrastructure: logging, caching, rate limiting, queues, model clients."""
