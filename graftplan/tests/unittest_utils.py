# SPDX-FileCopyrightText: Copyright (c) 2026 The Graftplan Developers
# SPDX-License-Identifier: Apache-2.0
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
# http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Helpers for registering device-parameterized tests."""

from __future__ import annotations

import re

import numpy as np
import warp as wp


def sanitize_identifier(value) -> str:
    """Turn a device alias such as ``cuda:0`` into ``cuda_0``."""
    return re.sub(r"\W", "_", str(value))


def get_test_devices(mode: str = "basic") -> list:
    """Warp devices tests should run on.

    Args:
        mode: ``"basic"`` runs on the CPU and the first CUDA device if present,
            ``"cpu"`` on the CPU only, ``"all"`` on every visible device.
    """
    wp.init()
    if mode == "cpu":
        return [wp.get_device("cpu")]
    if mode == "all":
        return list(wp.get_devices())
    if mode != "basic":
        raise ValueError(f"Unknown test device mode {mode!r}")

    devices = [wp.get_device("cpu")]
    if wp.is_cuda_available():
        devices.append(wp.get_device("cuda:0"))
    return devices


def add_function_test(cls, name: str, func, devices=None, **kwargs):
    """Attach ``func(test, device, **kwargs)`` to ``cls`` once per device.

    Each copy is named ``{name}_{device}``. Without devices the function is
    attached once under ``name`` and receives ``device=None``.
    """

    def make_method(device):
        def method(self):
            if device is None:
                func(self, None, **kwargs)
                return
            with wp.ScopedDevice(device):
                func(self, device, **kwargs)

        return method

    if devices is None:
        setattr(cls, name, make_method(None))
        return

    for device in devices:
        setattr(cls, f"{name}_{sanitize_identifier(device)}", make_method(device))


def assert_np_equal(result, expected, tol: float = 0.0):
    """Compare arrays element-wise with an absolute tolerance."""
    np.testing.assert_allclose(np.asarray(result), np.asarray(expected), rtol=0.0, atol=tol)
