"""
Runtime Boundary - hosts the sandboxed game runtime.

The trusted runtime is a WebAssembly module. Competitor modules are copied
into its linear memory once, and every game is played by calling the
runtime's exports with plain i32 arguments. Results come back as an opaque
handle whose fields are read one export call at a time and which must be
dropped exactly once afterwards.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional

from wasmtime import (
    Config,
    Engine,
    Func,
    Instance,
    Memory,
    Module,
    Store,
    Trap,
    WasmtimeError,
)

from .errors import FuelExhaustedError, GameTrapError, ProtocolError, SetupError

logger = logging.getLogger(__name__)

MEMORY_EXPORT = "memory"
REQUIRED_EXPORTS = (
    "allocate_bytes",
    "run_game",
    "result_get_winner",
    "result_get_ticks",
    "result_get_cycles",
    "result_get_reason_len",
    "result_get_reason_byte",
    "result_drop",
)
# Newer runtimes expose where the reason string lives so it can be read in
# one slice instead of one call per byte.
REASON_PTR_EXPORT = "result_get_reason_ptr"

U32_MASK = 0xFFFFFFFF


def to_i32(value: int) -> int:
    """Reinterpret an unsigned 32-bit value as the i32 the VM expects."""
    value &= U32_MASK
    return value - (1 << 32) if value >= (1 << 31) else value


def to_u32(value: int) -> int:
    """Reinterpret an i32 returned by the VM as an unsigned value."""
    return value & U32_MASK


@dataclass(frozen=True)
class CompetitorBuffer:
    """A competitor's module bytes inside the runtime's linear memory."""
    offset: int
    length: int


class RuntimeImage:
    """
    The compiled runtime module, shared by every worker.

    Compiling is the expensive part of bringing up a boundary, so it happens
    once per process. Each worker then instantiates the image into its own
    Store.
    """

    def __init__(self, runtime_bytes: bytes, fuel: Optional[int] = None):
        """
        Compile the runtime module.

        Args:
            runtime_bytes: WebAssembly binary of the runtime
            fuel: Execution budget per game in fuel units (None/0 = unmetered)
        """
        self.fuel = fuel or None

        config = Config()
        if self.fuel:
            config.consume_fuel = True
        self.engine = Engine(config)

        try:
            self.module = Module(self.engine, runtime_bytes)
        except WasmtimeError as e:
            raise SetupError(f"runtime module failed to compile: {e}") from e

        exported = {export.name for export in self.module.exports}
        for name in (MEMORY_EXPORT,) + REQUIRED_EXPORTS:
            if name not in exported:
                raise SetupError(f"runtime module is missing required export '{name}'")
        self.bulk_reason = REASON_PTR_EXPORT in exported

        logger.debug(
            "Compiled runtime (%d bytes, fuel=%s, bulk reason=%s)",
            len(runtime_bytes), self.fuel, self.bulk_reason,
        )

    @classmethod
    def from_file(cls, path: str, fuel: Optional[int] = None) -> "RuntimeImage":
        """Read and compile a runtime module from disk."""
        try:
            with open(path, "rb") as f:
                data = f.read()
        except OSError as e:
            raise SetupError(f"cannot read runtime module {path}: {e}") from e
        return cls(data, fuel=fuel)


class Boundary:
    """
    One sandboxed runtime instance with both competitors loaded.

    A Boundary is owned by exactly one thread. Nothing here locks; sharing an
    instance between threads is a caller bug.
    """

    def __init__(self, image: RuntimeImage, red_bytes: bytes, blue_bytes: bytes):
        """
        Instantiate the runtime and copy both competitors into it.

        Args:
            image: Compiled runtime
            red_bytes: Module bytes of the RED competitor
            blue_bytes: Module bytes of the BLUE competitor
        """
        self.fuel = image.fuel
        self.store = Store(image.engine)
        self._seed: Optional[int] = None
        self._regions: Dict[int, int] = {}

        # Start functions run under the budget too.
        self._refuel()
        try:
            instance = Instance(self.store, image.module, [])
        except (Trap, WasmtimeError) as e:
            raise SetupError(f"runtime module failed to instantiate: {e}") from e

        self.exports = instance.exports(self.store)
        memory = self.exports.get(MEMORY_EXPORT)
        if not isinstance(memory, Memory):
            raise SetupError(f"runtime export '{MEMORY_EXPORT}' is not a memory")
        self.memory = memory

        self._funcs: Dict[str, Func] = {}
        names = REQUIRED_EXPORTS + ((REASON_PTR_EXPORT,) if image.bulk_reason else ())
        for name in names:
            func = self.exports.get(name)
            if not isinstance(func, Func):
                raise SetupError(f"runtime export '{name}' is not a function")
            self._funcs[name] = func

        self.red = self.load_competitor(red_bytes)
        self.blue = self.load_competitor(blue_bytes)

    # ------------------------------------------------------------------
    # Linear memory
    # ------------------------------------------------------------------

    def allocate(self, size: int) -> int:
        """
        Reserve a region of linear memory.

        Returns:
            Offset of the region

        Raises:
            SetupError: if the runtime cannot provide the region
        """
        try:
            offset = to_u32(self._funcs["allocate_bytes"](self.store, to_i32(size)))
        except (Trap, WasmtimeError) as e:
            raise SetupError(f"runtime could not allocate {size} bytes: {e}") from e

        if offset + size > self.memory.data_len(self.store):
            raise SetupError(
                f"runtime returned region {offset}+{size} outside its memory"
            )
        self._regions[offset] = size
        return offset

    def write(self, offset: int, data: bytes):
        """Copy bytes into a region previously returned by allocate()."""
        capacity = self._regions.get(offset)
        if capacity is None:
            raise ValueError(f"offset {offset} was not returned by allocate()")
        if len(data) > capacity:
            raise ValueError(f"{len(data)} bytes do not fit a {capacity} byte region")
        self.memory.write(self.store, data, offset)

    def read_bytes(self, offset: int, length: int) -> bytes:
        """Read length bytes of linear memory starting at offset."""
        if offset + length > self.memory.data_len(self.store):
            raise ProtocolError(f"read of {offset}+{length} is outside runtime memory")
        return bytes(self.memory.read(self.store, offset, offset + length))

    def load_competitor(self, data: bytes) -> CompetitorBuffer:
        """Allocate a buffer for a competitor module and copy it in."""
        offset = self.allocate(len(data))
        self.write(offset, data)
        return CompetitorBuffer(offset=offset, length=len(data))

    # ------------------------------------------------------------------
    # Calls
    # ------------------------------------------------------------------

    def _refuel(self):
        if self.fuel:
            self.store.set_fuel(self.fuel)

    def _call(self, name: str, *args):
        try:
            return self._funcs[name](self.store, *args)
        except (Trap, WasmtimeError) as e:
            if self.fuel and self.store.get_fuel() == 0:
                raise FuelExhaustedError(self._seed, self.fuel) from e
            raise GameTrapError(self._seed, str(e)) from e

    def invoke_run(self, red: CompetitorBuffer, blue: CompetitorBuffer, seed: int) -> int:
        """
        Play one game to completion inside the VM.

        Blocks the calling thread for the whole game. With a fuel budget the
        game is cut off once the budget is spent.

        Returns:
            Opaque result handle; release() it after reading the fields
        """
        self._seed = seed
        self._refuel()
        handle = self._call(
            "run_game",
            to_i32(red.offset),
            to_i32(red.length),
            to_i32(blue.offset),
            to_i32(blue.length),
            to_i32(seed),
        )
        # Field reads get their own budget.
        self._refuel()
        return handle

    def read_winner(self, handle: int) -> int:
        return self._call("result_get_winner", handle)

    def read_ticks(self, handle: int) -> int:
        return to_u32(self._call("result_get_ticks", handle))

    def read_cycles(self, handle: int) -> int:
        return to_u32(self._call("result_get_cycles", handle))

    def read_reason(self, handle: int) -> str:
        """
        Reconstruct the lose reason for a result.

        Invalid UTF-8 is replaced rather than rejected.
        """
        length = to_u32(self._call("result_get_reason_len", handle))
        if REASON_PTR_EXPORT in self._funcs:
            offset = to_u32(self._call(REASON_PTR_EXPORT, handle))
            raw = self.read_bytes(offset, length)
        else:
            raw = bytes(
                self._call("result_get_reason_byte", handle, i) & 0xFF
                for i in range(length)
            )
        return raw.decode("utf-8", errors="replace")

    def release(self, handle: int):
        """Drop the VM-side state behind a result handle."""
        self._call("result_drop", handle)
