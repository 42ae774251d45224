"""
SimpleScrum - lightweight agile project engine.

Tracks projects, backlog items, sprints, tasks and retrospectives and derives
item status, capacity health and team velocity from raw mutations.
"""

__version__ = "0.1.0"
