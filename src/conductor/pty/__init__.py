"""PTY process plumbing — pseudo-terminal channels and output retention.

Agent CLIs run attached to the slave side of a PTY so they render as if
in an interactive terminal. Each channel isolates its child in a new
session and process group for safe tree-killing.
"""

from conductor.pty.buffer import OutputBuffer
from conductor.pty.channel import PtyChannel, spawn_channel

__all__ = [
    "OutputBuffer",
    "PtyChannel",
    "spawn_channel",
]
