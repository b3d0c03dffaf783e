"""
Operator control of a running crawl.
"""

from .repl import ControlShell, ShellCommandError, stdin_lines

__all__ = ['ControlShell', 'ShellCommandError', 'stdin_lines']
