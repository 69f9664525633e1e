"""Runtime pieces shared by every model.

Immutable model snapshots and their registry, deadlines and cancellation,
background training jobs, snapshot persistence, and the ``ShopSenseEngine``
façade exposed to callers.
"""
