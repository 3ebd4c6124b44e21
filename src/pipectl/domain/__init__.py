"""Domain layer — pure data types with no I/O.

Nothing here may import from infrastructure, services, commands, or output.
"""
