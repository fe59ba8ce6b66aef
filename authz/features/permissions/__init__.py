"""
Permission resolution feature module.

Resolves whether a user may perform an action on a resource from the dynamic
User -> Role -> Permission graph, falling back to a static policy keyed by the
user's built-in role.
"""
