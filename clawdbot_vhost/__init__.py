"""clawdbot-vhost: provision a host for the clawdbot gateway.

Core design goals:
- One linear run: detect, prerequisites, firewall, application, proxy, verify
- Idempotent steps (re-running converges, never duplicates)
- Platform dispatch through closed enums, one handler per variant
- Fail fast before any mutation on bad input
- Centralized logging
"""

__all__ = []
