"""
devices — Hue bridge client and the applicator that drives it.
"""
