"""
Routes package - Flask blueprints
- roadmap.py (/api/v1/roadmap)
- system.py (/api/v1/system)
"""
