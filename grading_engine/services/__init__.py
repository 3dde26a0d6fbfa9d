"""
Collaborators of the engine: roster, notification sinks, AI feedback and
safety classifiers.
"""
