"""ghist: project memory for coding agents.

Tasks, timeline events and opportunities live as one JSON document each under
the project's .ghist/ directory. A local server exposes them over HTTP and
pushes a refresh signal to connected boards whenever the documents change.
"""

__version__ = "0.4.0"
