"""
JustDo task tracking service.

The FastAPI application lives in `justdo.main`; the list query pipeline in
`justdo.query`.
"""
