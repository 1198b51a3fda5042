"""Coach assignment backend: scoped, date-bounded coach assignments for cohorts."""
