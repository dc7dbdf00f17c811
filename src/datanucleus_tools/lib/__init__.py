"""Core library: configuration, classpath, argument translation, invocation.

Primary modules:
- ``datanucleus_tools.lib.config`` for settings loading.
- ``datanucleus_tools.lib.arguments`` for operations and command-line tokens.
- ``datanucleus_tools.lib.invocation`` for forked and in-process execution.
- ``datanucleus_tools.lib.runner`` for the end-to-end operation flow.
"""
