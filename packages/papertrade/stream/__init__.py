"""Price streaming: subscription registry and periodic broadcast.

Modules:
  registry.py   SubscriptionRegistry: connection id -> interest set
  broadcast.py  BroadcastScheduler: fetch once per wanted key, fan out
"""
