"""Shared fixtures: a tiny game runtime written in WebAssembly text.

The test runtime speaks the real call/result ABI. It only looks at the first
byte of each competitor module to decide what happens:

    'I' in RED  -> winner code 3 (RED failed validation)
    'I' in BLUE -> winner code 4 (BLUE failed validation)
    'L' in RED  -> BLUE wins, reason "collided with wall"
    'U' in RED  -> RED wins, reason contains invalid UTF-8
    'X' in RED  -> loops forever
    'T' in RED  -> traps
    'W' in RED  -> unknown winner code 9
    anything else -> winner = seed % 3, tick = 2 * seed, cycle = 3 * seed + 7,
                     reason "ran out of moves"
"""

import pytest
import wasmtime

from wasmarena.boundary import Boundary, RuntimeImage

RUNTIME_WAT = """
(module
  (memory (export "memory") 2)
  (global $heap (mut i32) (i32.const 16384))
  (global $next_handle (mut i32) (i32.const 1))
  (global $live (mut i32) (i32.const 0))
  (global $byte_calls (mut i32) (i32.const 0))

  (data (i32.const 256) "collided with wall")
  (data (i32.const 320) "ran out of moves")
  (data (i32.const 384) "bad \\ff\\fe byte")

  (func (export "allocate_bytes") (param $size i32) (result i32)
    (local $ptr i32)
    (local.set $ptr (global.get $heap))
    (global.set $heap (i32.add (global.get $heap) (local.get $size)))
    (local.get $ptr))

  (func $slot (param $h i32) (result i32)
    (i32.add
      (i32.mul (i32.and (local.get $h) (i32.const 63)) (i32.const 32))
      (i32.const 4096)))

  (func $store_result (param $winner i32) (param $ticks i32) (param $cycles i32)
                      (param $rptr i32) (param $rlen i32) (result i32)
    (local $h i32)
    (local $addr i32)
    (local.set $h (global.get $next_handle))
    (global.set $next_handle (i32.add (global.get $next_handle) (i32.const 1)))
    (global.set $live (i32.add (global.get $live) (i32.const 1)))
    (local.set $addr (call $slot (local.get $h)))
    (i32.store offset=0 (local.get $addr) (local.get $winner))
    (i32.store offset=4 (local.get $addr) (local.get $ticks))
    (i32.store offset=8 (local.get $addr) (local.get $cycles))
    (i32.store offset=12 (local.get $addr) (local.get $rptr))
    (i32.store offset=16 (local.get $addr) (local.get $rlen))
    (local.get $h))

  (func (export "run_game") (param $ra i32) (param $rl i32) (param $ba i32)
                            (param $bl i32) (param $seed i32) (result i32)
    (local $mode i32)
    (local.set $mode (i32.load8_u (local.get $ra)))
    (if (i32.eq (local.get $mode) (i32.const 73))
      (then (return (call $store_result (i32.const 3) (i32.const 0) (i32.const 0)
                                        (i32.const 0) (i32.const 0)))))
    (if (i32.eq (i32.load8_u (local.get $ba)) (i32.const 73))
      (then (return (call $store_result (i32.const 4) (i32.const 0) (i32.const 0)
                                        (i32.const 0) (i32.const 0)))))
    (if (i32.eq (local.get $mode) (i32.const 76))
      (then (return (call $store_result (i32.const 1) (i32.const 1) (i32.const 3)
                                        (i32.const 256) (i32.const 18)))))
    (if (i32.eq (local.get $mode) (i32.const 85))
      (then (return (call $store_result (i32.const 0) (i32.const 5) (i32.const 5)
                                        (i32.const 384) (i32.const 11)))))
    (if (i32.eq (local.get $mode) (i32.const 87))
      (then (return (call $store_result (i32.const 9) (i32.const 0) (i32.const 0)
                                        (i32.const 0) (i32.const 0)))))
    (if (i32.eq (local.get $mode) (i32.const 88))
      (then (loop $spin (br $spin))))
    (if (i32.eq (local.get $mode) (i32.const 84))
      (then (unreachable)))
    (call $store_result
      (i32.rem_u (local.get $seed) (i32.const 3))
      (i32.mul (local.get $seed) (i32.const 2))
      (i32.add (i32.mul (local.get $seed) (i32.const 3)) (i32.const 7))
      (i32.const 320)
      (i32.const 16)))

  (func (export "result_get_winner") (param $h i32) (result i32)
    (i32.load offset=0 (call $slot (local.get $h))))
  (func (export "result_get_ticks") (param $h i32) (result i32)
    (i32.load offset=4 (call $slot (local.get $h))))
  (func (export "result_get_cycles") (param $h i32) (result i32)
    (i32.load offset=8 (call $slot (local.get $h))))
  (func (export "result_get_reason_len") (param $h i32) (result i32)
    (i32.load offset=16 (call $slot (local.get $h))))
  (func (export "result_get_reason_byte") (param $h i32) (param $i i32) (result i32)
    (global.set $byte_calls (i32.add (global.get $byte_calls) (i32.const 1)))
    (i32.load8_u (i32.add (i32.load offset=12 (call $slot (local.get $h)))
                          (local.get $i))))
  (func (export "result_drop") (param $h i32)
    (global.set $live (i32.sub (global.get $live) (i32.const 1))))

  (func (export "live_handles") (result i32) (global.get $live))
  (func (export "reason_byte_calls") (result i32) (global.get $byte_calls))
  ;; EXTRA_EXPORTS
)
"""

REASON_PTR_WAT = """
  (func (export "result_get_reason_ptr") (param $h i32) (result i32)
    (i32.load offset=12 (call $slot (local.get $h))))
"""

# Competitor "modules": only the first byte matters to the test runtime.
SEEDED = b"S-seeded-competitor"
LOSER = b"L-always-hits-the-wall"
INVALID = b"I-missing-exports"
BAD_UTF8 = b"U-garbled-reason"
SPINNER = b"X-never-returns"
TRAPPER = b"T-traps"
WEIRD = b"W-unknown-winner"


def build_runtime(reason_ptr: bool = False) -> bytes:
    wat = RUNTIME_WAT
    if reason_ptr:
        wat = wat.replace(";; EXTRA_EXPORTS", REASON_PTR_WAT)
    return bytes(wasmtime.wat2wasm(wat))


def expected_seeded(seed: int):
    """What the test runtime reports for SEEDED vs anything at a given seed."""
    return seed % 3, (2 * seed) & 0xFFFFFFFF, (3 * seed + 7) & 0xFFFFFFFF


@pytest.fixture(scope="session")
def runtime_bytes():
    return build_runtime()


@pytest.fixture(scope="session")
def runtime_image(runtime_bytes):
    return RuntimeImage(runtime_bytes)


@pytest.fixture
def make_boundary(runtime_image):
    """Build a Boundary on the unmetered test runtime."""
    def _make(red=SEEDED, blue=SEEDED, image=None):
        return Boundary(image or runtime_image, red, blue)
    return _make


@pytest.fixture
def module_files(tmp_path, runtime_bytes):
    """Write the runtime and a set of competitor modules to disk."""
    paths = {"runtime": tmp_path / "runtime.wasm"}
    paths["runtime"].write_bytes(runtime_bytes)
    for name, data in (
        ("seeded", SEEDED),
        ("loser", LOSER),
        ("invalid", INVALID),
    ):
        paths[name] = tmp_path / f"{name}.wasm"
        paths[name].write_bytes(data)
    return {name: str(path) for name, path in paths.items()}


class FakeBoundary:
    """Pure-Python stand-in for Boundary that records every call."""

    def __init__(self, outcomes=None, fail_on=None):
        self.red = "red-buffer"
        self.blue = "blue-buffer"
        self.calls = []
        self.seeds = []
        # seed -> (winner code, ticks, cycles, reason)
        self.outcomes = outcomes or (lambda seed: (1, seed, seed + 1, "collided with wall"))
        self.fail_on = fail_on or {}
        self._handles = {}
        self._next = 100

    def invoke_run(self, red, blue, seed):
        assert (red, blue) == (self.red, self.blue)
        self.calls.append("invoke_run")
        self.seeds.append(seed)
        if "invoke_run" in self.fail_on:
            raise self.fail_on["invoke_run"]
        self._next += 1
        self._handles[self._next] = self.outcomes(seed)
        return self._next

    def _field(self, name, handle, index):
        assert handle in self._handles, f"{name} on released handle {handle}"
        self.calls.append(name)
        if name in self.fail_on:
            raise self.fail_on[name]
        return self._handles[handle][index]

    def read_winner(self, handle):
        return self._field("read_winner", handle, 0)

    def read_ticks(self, handle):
        return self._field("read_ticks", handle, 1)

    def read_cycles(self, handle):
        return self._field("read_cycles", handle, 2)

    def read_reason(self, handle):
        return self._field("read_reason", handle, 3)

    def release(self, handle):
        assert handle in self._handles, f"double release of {handle}"
        self.calls.append("release")
        del self._handles[handle]
        if "release" in self.fail_on:
            raise self.fail_on["release"]

    @property
    def live_handles(self):
        return len(self._handles)
