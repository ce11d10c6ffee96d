"""
Output handling components for pipeproc

Contains the buffers that accumulate captured child output.
"""

from .output_buffer import StreamBuffer

__all__ = ["StreamBuffer"]
