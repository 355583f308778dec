"""
Permission feature module.

Scoped permission grants, single and bulk permission resolution, and the
decision cache.
"""
