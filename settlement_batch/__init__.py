"""
Settlement batch -- scheduled background work.

The overdue sweep flags open installments whose due date has passed.  It
runs once a day from an in-process polling scheduler, one tenant per
savepoint, so a failing tenant never blocks the others.
"""
