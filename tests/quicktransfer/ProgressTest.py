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

import io
import unittest

from quicktransfer.Progress import BitmathTqdm, Progress


class ProgressTest(unittest.TestCase):

    def testUpdateAdvancesBarByIncrement(self):
        out = io.StringIO()
        progress = Progress(1000, file=out)

        progress.update(300)
        progress.update(800)
        self.assertEqual(progress.pbar.n, 800)
        self.assertEqual(progress.transferred, 800)

        # A stale total never moves the bar backwards
        progress.update(500)
        self.assertEqual(progress.pbar.n, 800)

        progress.finish()
        self.assertIsNone(progress.pbar)
        self.assertIn('Sending', out.getvalue())

    def testFinishIsIdempotent(self):
        with Progress(10, file=io.StringIO()) as progress:
            progress.update(10)
            progress.finish()

        self.assertIsNone(progress.pbar)

    def testSizesUseFormatter(self):
        out = io.StringIO()
        bar = BitmathTqdm(total=2048, sizeFormatter=lambda size: f'<{size}>', file=out)
        bar.update(1024)

        formatted = bar.format_dict
        self.assertEqual(formatted['n_fmt'], '<1024>')
        self.assertEqual(formatted['total_fmt'], '<2048>')
        bar.close()


if __name__ == '__main__':
    unittest.main()
