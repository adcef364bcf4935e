"""Local TCP server that behaves like an ESC/POS printer on port 9100."""

import asyncio
from dataclasses import dataclass, field
from typing import Optional

from kitchen_print.services.escpos import TRANSMIT_PAPER_STATUS, TRANSMIT_PRINTER_STATUS


@dataclass
class FakePrinter:
    """
    Answers DLE EOT 1 / DLE EOT 4 with the configured bytes.

    ``None`` for a byte means the printer stays silent for that query.
    With ``close_after`` set, the connection is closed once that many
    bytes have arrived, without answering.
    """
    status_byte: Optional[int] = 0x12
    paper_byte: Optional[int] = 0x12
    close_after: Optional[int] = None
    received: bytearray = field(default_factory=bytearray)
    connections: int = 0
    server: Optional[asyncio.AbstractServer] = None

    @property
    def port(self) -> int:
        return self.server.sockets[0].getsockname()[1]

    async def start(self) -> "FakePrinter":
        self.server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        return self

    async def stop(self) -> None:
        self.server.close()
        await self.server.wait_closed()

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self.connections += 1
        seen = 0
        pending = b""
        try:
            while True:
                chunk = await reader.read(1024)
                if not chunk:
                    break
                self.received.extend(chunk)
                seen += len(chunk)
                if self.close_after is not None:
                    if seen >= self.close_after:
                        break
                    continue

                pending += chunk
                while len(pending) >= 3:
                    command, pending = pending[:3], pending[3:]
                    if command == TRANSMIT_PRINTER_STATUS and self.status_byte is not None:
                        writer.write(bytes([self.status_byte]))
                    elif command == TRANSMIT_PAPER_STATUS and self.paper_byte is not None:
                        writer.write(bytes([self.paper_byte]))
                await writer.drain()
        except ConnectionError:
            pass
        finally:
            writer.close()
