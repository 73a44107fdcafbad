"""
pipeline — Orchestration controller and the synthetic debug event cycle.

The controller owns the queue, the applicator and the lifecycle FSM, and runs
the single consumer thread that applies effects in arrival order.
"""
