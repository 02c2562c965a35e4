"""
Configuration for the relay SDK.

- **app_configuration.py**: YAML-backed tuning (intervals, timeouts, fail-open).
- **relay_settings.py**: Credentials and endpoints from the environment.
"""
