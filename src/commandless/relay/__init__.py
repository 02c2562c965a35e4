"""
Transport and client for the hosted Commandless relay.

- **http.py**: aiohttp GET/POST helpers that return HttpResponse values.
- **signing.py**: HMAC request signatures, timestamps and idempotency keys.
- **relay_client.py**: RelayClient for registration, heartbeats and events.
"""
