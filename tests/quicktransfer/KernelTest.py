#!/usr/bin/env python
# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0
#
# quick-transfer - Serve a file once over HTTP, then exit
# Copyright (C) 2024-2025 quick-transfer contributors
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

import logging
import os
import unittest

from unittest.mock import patch

from quicktransfer.Kernel import PUBLIC_VERSION, QuickTransferError, Singleton, configureGlobalLogLevel, getLogger
from quicktransfer.Settings import DEFAULT_ADDRESS, SettingsGetter


class KernelTest(unittest.TestCase):

    def testErrorExitCode(self):
        self.assertEqual(QuickTransferError('failed').exitCode, 1)
        self.assertEqual(QuickTransferError('failed', exitCode=3).exitCode, 3)

        class CustomError(QuickTransferError):
            exitCode = 4

        self.assertEqual(CustomError('failed').exitCode, 4)

    def testGetLoggerCarriesVersion(self):
        logger = getLogger('quicktransfer.kernel.test')

        self.assertIsInstance(logger, logging.LoggerAdapter)
        self.assertEqual(logger.extra['version'], PUBLIC_VERSION)

    def testConfigureGlobalLogLevel(self):
        rootLogger = logging.getLogger()
        self.addCleanup(rootLogger.setLevel, rootLogger.level)

        configureGlobalLogLevel(logging.INFO)
        self.assertEqual(rootLogger.level, logging.INFO)


class SingletonTest(unittest.TestCase):

    def testInitializeOnce(self):

        class Counter(Singleton):
            calls = 0

            def initialize(self, start=0):
                Counter.calls += 1
                self.value = start

        self.addCleanup(Counter.reset)

        first = Counter(start=5)
        second = Counter.getInstance()

        self.assertIs(first, second)
        self.assertEqual(second.value, 5)
        self.assertEqual(Counter.calls, 1)

        Counter.reset()
        self.assertIsNot(Counter.getInstance(), first)
        self.assertEqual(Counter.calls, 2)


class SettingsGetterTest(unittest.TestCase):

    def setUp(self):
        self.original = SettingsGetter._instances.pop(SettingsGetter, None)
        self.addCleanup(self.restore)

    def restore(self):
        SettingsGetter.reset()
        if self.original is not None:
            SettingsGetter._instances[SettingsGetter] = self.original

    def testEnvironmentOverrides(self):
        with patch.dict(os.environ, {'QUICK_TRANSFER_PORT': '9000', 'TRANSFER_CHUNK_SIZE': '1024'}):
            settings = SettingsGetter(platform='Linux')

        self.assertEqual(settings.port, 9000)
        self.assertEqual(settings.chunkSize, 1024)
        self.assertEqual(settings.address, os.getenv('QUICK_TRANSFER_ADDRESS', DEFAULT_ADDRESS))
        self.assertTrue(settings.isLinux())

    def testKeywordOverrides(self):
        settings = SettingsGetter(platform='Windows', spoolMemoryLimit=1)

        self.assertEqual(settings.spoolMemoryLimit, 1)
        self.assertFalse(settings.isLinux())


if __name__ == '__main__':
    unittest.main()
