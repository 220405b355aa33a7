"""
Pseudo-terminal for running an interactive assistant CLI under supervision
"""

from typing import Optional, Tuple
import asyncio
import fcntl
import logging
import os
import pty
import struct
import termios


logger = logging.getLogger(__name__)

DEFAULT_COLUMNS = 120
DEFAULT_ROWS = 40


class Terminal:
    """A pty pair: the child gets the slave side, the session reads and writes the master.

    Input echo is turned off so delivered responses are not read back as
    assistant output.
    """

    def __init__(self, columns: int = DEFAULT_COLUMNS, rows: int = DEFAULT_ROWS):
        self.master_fd, self.slave_fd = pty.openpty()
        self.reader: Optional[asyncio.StreamReader] = None
        self.writer: Optional[asyncio.StreamWriter] = None
        self._read_transport: Optional[asyncio.ReadTransport] = None

        winsize = struct.pack('HHHH', rows, columns, 0, 0)
        fcntl.ioctl(self.slave_fd, termios.TIOCSWINSZ, winsize)

        attrs = termios.tcgetattr(self.slave_fd)
        attrs[3] &= ~termios.ECHO
        termios.tcsetattr(self.slave_fd, termios.TCSANOW, attrs)
        logger.debug("Opened terminal %sx%s", columns, rows)

    def release_child_side(self):
        """Close our copy of the slave fd once the child has inherited it"""
        if self.slave_fd is not None:
            os.close(self.slave_fd)
            self.slave_fd = None

    async def connect(self) -> Tuple[asyncio.StreamReader, asyncio.StreamWriter]:
        loop = asyncio.get_running_loop()

        self.reader = asyncio.StreamReader()
        read_pipe = os.fdopen(self.master_fd, 'rb', buffering=0)
        self._read_transport, _ = await loop.connect_read_pipe(
            lambda: asyncio.StreamReaderProtocol(self.reader), read_pipe
        )

        write_pipe = os.fdopen(os.dup(self.master_fd), 'wb', buffering=0)
        transport, protocol = await loop.connect_write_pipe(asyncio.streams.FlowControlMixin, write_pipe)
        self.writer = asyncio.StreamWriter(transport, protocol, None, loop)
        return self.reader, self.writer

    def close(self):
        self.release_child_side()
        if self.writer is not None:
            self.writer.close()
            self.writer = None
        if self._read_transport is not None:
            self._read_transport.close()
            self._read_transport = None
        elif self.master_fd is not None:
            os.close(self.master_fd)
        self.master_fd = None
