"""
h5viz Controllers Module

This module provides the session loop of h5viz. The SessionController owns
the session state and connects the event source, the state machine, the
dataset cache and the terminal.

Example
-------
>>> from h5viz.controllers import SessionController
>>>
>>> controller = SessionController(ctx, store, terminal=term)
>>> exit_code = controller.run()
"""

from h5viz.controllers.session_controller import SessionController

__all__ = ['SessionController']
