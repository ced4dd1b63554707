# Routes package init
"""
Codemmunity Backend: API Routes Package
=========================================

Route Inventory:
    - posts.py:     GET/POST          /api/posts
                    GET/PATCH/DELETE  /api/posts/{id}
                    PATCH             /api/posts/{id}/likes
                    GET               /api/posts/{id}/comments
    - comments.py:  POST              /api/comments
                    GET/PATCH/DELETE  /api/comments/{id}
    - health.py:    GET               /health
    - deps.py:      shared dependencies (repositories, actor identity)

Routes stay thin: parse the request, call one repository operation, shape
the response. Errors are translated by the handlers in main.py.
"""
