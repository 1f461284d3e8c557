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
import signal
import sys

from quicktransfer.CLI import configureCLIParser, configureLogging, loadEnvFile, processArguments, showVersion
from quicktransfer.Display import display
from quicktransfer.Kernel import QuickTransferError, getLogger
from quicktransfer.Reader import SourceResolver
from quicktransfer.Server import createServer
from quicktransfer.Settings import SettingsGetter
from quicktransfer.Utils import (
    LOOPBACK_ADDRESSES, copy2Clipboard, flushPrint, formatSize, getInternalIPv4, sendException
)

logger = getLogger(__name__)


def setupGracefulShutdown():
    """Setup signal handlers for graceful shutdown on multiple Ctrl+C"""
    context = {'shutdownInProgress': False}

    def signalHandler(signum, frame):
        if context['shutdownInProgress']:
            # Second Ctrl+C - force immediate exit without cleanup messages
            os._exit(0)
        else:
            context['shutdownInProgress'] = True
            raise KeyboardInterrupt()

    signal.signal(signal.SIGINT, signalHandler)


def selectDisplayHost(displayAddress, boundAddress):
    if displayAddress:
        return displayAddress

    if boundAddress in LOOPBACK_ADDRESSES:
        logger.debug('Getting internal IP because address is a loopback device')
        return getInternalIPv4()

    return boundAddress


def serveFile(servable, args):
    """
    Serve servable once with the parsed arguments: bind, show the link, wait for the request.

    Returns:
        TransferResult: What the single response did
    """
    server = createServer(servable, showProgress=args.progress and sys.stderr.isatty())

    def onListening(address, port, **kwargs):
        shown = display(selectDisplayHost(args.display, address), port, servable)

        flushPrint(shown.uri)
        flushPrint(shown.qrcode)

        if args.copy:
            copy2Clipboard(shown.uri)

    server.listening.connect(onListening)

    try:
        server.listen(args.port, args.address)
        result = server.start()
    finally:
        # Never served or interrupted: release the listener and the stream.
        server.close()

    logger.debug(f'Server stopped: {result}')
    if result.status == 200:
        logger.info(f'Sent "{servable.name}" ({formatSize(result.bytesSent)})')

    return result


def main(argv=None):
    loadEnvFile()
    SettingsGetter.getInstance()

    parser = configureCLIParser()
    args = parser.parse_args(argv)

    configureLogging(args.logLevel, args.verbose)

    if args.version:
        showVersion()
        return 0

    processArguments(args)
    setupGracefulShutdown()

    try:
        resolver = SourceResolver.build(
            args.files, filename=args.filename, extension=args.extension, glob=args.glob
        )
        servable = resolver.resolve()
        serveFile(servable, args)
    except KeyboardInterrupt:
        flushPrint('\nExiting on user request (Ctrl+C)...', file=sys.stderr)
        return 0
    except QuickTransferError as e:
        sendException(logger, e)
        return e.exitCode
    except OSError as e:
        sendException(logger, e)
        return 1

    return 0


if __name__ == '__main__':
    sys.exit(main())
