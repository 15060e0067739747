"""Pipeline stages: extraction, star contraction, convergence, termination, check.

Each stage exposes plain map/reduce functions plus one ``run_*`` call that
drives them through a :class:`starcc.substrate.LocalRunner` and reads or
writes record sets through :mod:`starcc.storage`.
"""
