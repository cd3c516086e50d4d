"""Exit codes for the ``pyemr`` CLI."""

EXIT_SUCCESS = 0
EXIT_ERROR = 1
# ``ask``: the axiom is not entailed
EXIT_NOT_ENTAILED = 2
