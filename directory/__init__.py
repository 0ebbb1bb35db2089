"""
MongoDB backed directory of courses and users, and the cookie store.
"""
