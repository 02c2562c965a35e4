"""
Commandless - relay SDK for natural-language Discord bots

Commandless lets a bot owner map natural-language messages to bot commands from
a web dashboard. This package is the client side: it keeps the bot's dashboard
configuration in sync and decides locally which messages are worth sending to
the hosted relay.

Core Components:

- **Config Cache**: Versioned snapshot of the bot's relay configuration,
  refreshed by a background poller, with a fail-safe that keeps the last good
  config when the relay is unreachable
- **Admission Pipeline**: Master switch, channel policy, user/role policy
  (including premium detection) and per-user / per-guild hourly rate limits
- **Relay Client**: Bot registration, heartbeats and signed event delivery with
  retries and idempotency keys
- **Discord Adapter**: py-cord cog that gates messages and applies the relay's
  replies

Usage:
    from commandless.main import main
    main()  # Runs a relay-connected bot from environment settings
"""
