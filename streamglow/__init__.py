"""
StreamGlow — live-stream events → Philips Hue light effects.

Donations, follows, subscriptions and bits arrive over a webhook, are decoded
and queued, then shown one at a time on every light before reverting to the
idle state.
"""

__version__ = "1.0.0"
__author__ = "StreamGlow Team"
