"""
Halo gateway access: GraphQL documents and the async client used by the watchers.
"""
