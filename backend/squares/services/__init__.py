"""Domain services for squares pools.

Routes and socket handlers call into these packages; transport concerns
(request parsing, status codes, rooms) stay out of them.
"""
