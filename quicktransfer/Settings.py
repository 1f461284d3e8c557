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

import os
import platform

from quicktransfer.Kernel import Singleton, getLogger

DEFAULT_ADDRESS = '0.0.0.0'
DEFAULT_PORT = 0 # Let the operating system choose

DEFAULT_STDIN_NAME = 'stdin.txt'
DEFAULT_ARCHIVE_NAME = 'archive.zip'
DEFAULT_CONTENT_TYPE = 'text/plain'

# Transfer chunk size (64 KiB) - used when streaming the file to the response
TRANSFER_CHUNK_SIZE = int(os.getenv('TRANSFER_CHUNK_SIZE', 64 * 1024))

# Piped stdin and generated archives stay in memory up to this size, then spill to a temp file
SPOOL_MEMORY_LIMIT = int(os.getenv('SPOOL_MEMORY_LIMIT', 8 * 1024 * 1024))

SUPPORT_URL = 'https://github.com/quick-transfer/quick-transfer/issues'

logger = getLogger(__name__)


# Singleton
class SettingsGetter(Singleton):

    def initialize(self, platform=platform.system(), **kwargs):
        # Imported here, Utils depends on this module.
        from quicktransfer.Utils import getEnv

        self.platform = platform

        self.address = getEnv('QUICK_TRANSFER_ADDRESS', DEFAULT_ADDRESS)
        self.port = getEnv('QUICK_TRANSFER_PORT', DEFAULT_PORT)
        self.chunkSize = getEnv('TRANSFER_CHUNK_SIZE', TRANSFER_CHUNK_SIZE)
        self.spoolMemoryLimit = getEnv('SPOOL_MEMORY_LIMIT', SPOOL_MEMORY_LIMIT)

        for key, value in kwargs.items():
            setattr(self, key, value)

        logger.debug(
            f'Settings: address={self.address}, port={self.port}, chunkSize={self.chunkSize}, '
            f'spoolMemoryLimit={self.spoolMemoryLimit}'
        )

    def isLinux(self):
        return self.platform.lower() == 'linux'

    def getSupportURL(self):
        return SUPPORT_URL
