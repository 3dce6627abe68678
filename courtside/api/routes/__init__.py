"""
API routes.

- sync: inbound triggers (on-demand game sync, discovery, recalculation,
  scheduler status), mounted under /api/v1
"""
