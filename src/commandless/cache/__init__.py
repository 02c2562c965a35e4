"""
Local relay configuration cache and admission control.

- **config_cache.py**: ConfigCache holding the current BotConfig, polling the
  relay for changes and running the admission pipeline per message.
- **policy.py**: Pure channel, permission, premium and trigger checks.
- **rate_limit.py**: Fixed one-hour request windows keyed by user or guild.
"""
