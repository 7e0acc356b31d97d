"""Domain layer: value objects, commands, events and the alert aggregate.

Everything here is immutable and free of I/O.
"""
