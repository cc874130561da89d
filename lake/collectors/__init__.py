"""
Collectors: page through the Asana API and append raw records.

base.py        ApiCollector (pagination, fan-out, cancellation)
resilience.py  retry/backoff and rate limiting used by the HTTP client
asana.py       one collect_* stage per resource kind
"""
