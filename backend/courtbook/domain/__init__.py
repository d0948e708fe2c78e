"""
Pure scheduling logic: interval arithmetic, the booking policy gate and
recurrence expansion. Nothing in this package touches the database.
"""
