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

import argparse
import json
import logging
import logging.config
import mimetypes
import os
import platform
import sys

from quicktransfer.Kernel import PUBLIC_VERSION, LOG_LEVEL_MAPPING, configureGlobalLogLevel, getLogger
from quicktransfer.Settings import DEFAULT_ADDRESS, SettingsGetter
from quicktransfer.Utils import flushPrint, getEnv, isIPv4

CONFIG_DIR_NAME = '.quick-transfer'

logger = getLogger(__name__)


def findConfig(name, cwd=None):
    """First existing `name` in the working directory, then ~/.quick-transfer/. None if neither."""
    for directory in (cwd or os.getcwd(), os.path.join(os.path.expanduser('~'), CONFIG_DIR_NAME)):
        path = os.path.join(directory, name)
        if os.path.isfile(path):
            return path
    return None


def loadEnvFile(envFilePath=None):
    """
    Load environment variables from a .env file.
    Only sets variables that are not already defined in os.environ.

    Returns:
        int: Number of variables set
    """
    envFilePath = envFilePath or findConfig('.env')

    if not envFilePath or not os.path.exists(envFilePath):
        return 0

    logger.debug(f'Loading .env file from: {envFilePath}')
    loadedCount = 0

    try:
        with open(envFilePath, 'r', encoding='utf-8') as f:
            for lineNum, line in enumerate(f, 1):
                line = line.strip()

                if not line or line.startswith('#'):
                    continue

                if '=' not in line:
                    flushPrint(f'Warning: .env line {lineNum}: Invalid format (missing =): {line}')
                    continue

                key, _, value = line.partition('=')
                key = key.strip()
                value = value.strip()

                if not key:
                    flushPrint(f'Warning: .env line {lineNum}: Empty key')
                    continue

                if (value.startswith('"') and value.endswith('"')) or \
                   (value.startswith("'") and value.endswith("'")):
                    value = value[1:-1]

                # Environment takes precedence
                if key not in os.environ:
                    os.environ[key] = value
                    loadedCount += 1
                else:
                    logger.debug(f'.env: Skipped {key} (already set in environment)')
    except (OSError, UnicodeDecodeError) as e:
        flushPrint(f'Error: Unable to load .env file {envFilePath}: {e}')
        logger.debug(f'Unable to load .env file: {e}', exc_info=True)

    logger.debug(f'Loaded {loadedCount} environment variables from .env')
    return loadedCount


def configureLogging(logLevel, verbose=False):
    """Configure logging from --log-level / -v, or QUICK_TRANSFER_LOGGING_LEVEL

    The level can be a name (DEBUG, INFO, WARNING, ERROR) or a path to a logging
    configuration JSON file for logging.config.dictConfig.
    """

    def suppressNoisyLogger():
        logging.getLogger('sentry_sdk').setLevel(logging.INFO)

    if verbose:
        logLevel = 'DEBUG'

    if logLevel is None:
        logLevel = getEnv('QUICK_TRANSFER_LOGGING_LEVEL', None)

    if logLevel is None:
        suppressNoisyLogger()
        return None

    if os.path.isfile(logLevel):
        try:
            with open(logLevel, 'r') as configFile:
                configDict = json.load(configFile)

            logging.config.dictConfig(configDict)
            logger.info(f'Logging configured from file: {logLevel}')
            suppressNoisyLogger()
            return logLevel
        except (json.JSONDecodeError, ValueError, KeyError) as e:
            flushPrint(f'Failed to load logging config from {logLevel}: {e}')
            flushPrint('Falling back to default logging level configuration')

    if logLevel.upper() in LOG_LEVEL_MAPPING:
        configureGlobalLogLevel(LOG_LEVEL_MAPPING[logLevel.upper()])
        logger.debug(f'Logging level set to {logLevel}')
    else:
        logger.warning(f"Invalid logging level '{logLevel}', using WARNING as default")
        configureGlobalLogLevel(logging.WARNING)

    suppressNoisyLogger()

    return logLevel


def showVersion():
    flushPrint(f'quick-transfer v{PUBLIC_VERSION}')

    uname = platform.uname()
    flushPrint(f'Architecture: {uname.system} {uname.release} {uname.machine}')
    flushPrint(f'Support: {SettingsGetter.getInstance().getSupportURL()}')


def validatePort(portStr):
    """Validate port number for argparse, 0 lets the operating system choose"""
    try:
        port = int(portStr)
    except ValueError:
        raise argparse.ArgumentTypeError(f'Invalid port number: {portStr}')

    if not (0 <= port <= 65535):
        raise argparse.ArgumentTypeError(f'Port {port} is out of valid range (0-65535)')
    return port


def validateLogLevel(logLevel):
    # Allow file paths (they'll be validated later)
    if os.path.exists(logLevel):
        return logLevel

    if logLevel.upper() not in LOG_LEVEL_MAPPING:
        raise argparse.ArgumentTypeError(
            f"Invalid log level '{logLevel}'. Valid levels are: {', '.join(LOG_LEVEL_MAPPING)}"
        )
    return logLevel.upper()


def configureCLIParser():
    settingsGetter = SettingsGetter.getInstance()

    parser = argparse.ArgumentParser(
        prog='quick-transfer',
        description=(
            'Serve a file once over HTTP and exit. With no files, stdin is sent; '
            'with several files or --glob, a zip archive of them is sent.'
        ),
    )
    parser.add_argument('files', metavar='FILE', nargs='*', help='File to send, or glob patterns to archive')
    parser.add_argument(
        '-a',
        '--address',
        default=settingsGetter.address,
        metavar='IPv4',
        help=f'Address to bind to (default: {DEFAULT_ADDRESS})',
    )
    parser.add_argument(
        '-d', '--display', metavar='IPv4', help='Address to show in the link (default: an internal IP)'
    )
    parser.add_argument('-e', '--extension', metavar='EXT', help='Override the file extension')
    parser.add_argument(
        '-f', '--filename', metavar='NAME', help='Override the file name (default: stdin.txt or archive.zip)'
    )
    parser.add_argument(
        '-g',
        '--glob',
        action='store_true',
        default=False,
        help='Treat a single argument as a glob pattern and send an archive',
    )
    parser.add_argument(
        '-p',
        '--port',
        type=validatePort,
        default=settingsGetter.port,
        metavar='PORT',
        help='Port to listen on (0-65535, default: 0 picks a free port)',
    )
    parser.add_argument(
        '-t',
        '--type',
        dest='contentType',
        metavar='MIME',
        help='Content type of the data, also changes the extension (overrides --extension)',
    )
    parser.add_argument(
        '-c', '--copy', action='store_true', default=False, help='Copy the link to the clipboard'
    )
    parser.add_argument(
        '--no-progress',
        action='store_false',
        default=True,
        dest='progress',
        help='Do not show a progress bar while sending',
    )
    parser.add_argument('-v', '--verbose', action='store_true', default=False, help='Debug output')
    parser.add_argument(
        '--log-level',
        type=validateLogLevel,
        dest='logLevel',
        metavar='LEVEL_OR_FILE',
        help='Set logging level (DEBUG, INFO, WARNING, ERROR) or path to logging config JSON file',
    )
    parser.add_argument('--version', action='store_true', default=False, help='Show version information')

    return parser


def processArguments(args):
    """Normalize parsed arguments in place: bind address and the extension implied by --type."""
    if not isIPv4(args.address):
        flushPrint(f'Warning: "{args.address}" is not an IPv4 address, binding to {DEFAULT_ADDRESS}', file=sys.stderr)
        args.address = DEFAULT_ADDRESS

    if args.display and not isIPv4(args.display):
        flushPrint(f'Warning: "{args.display}" is not an IPv4 address, ignoring --display', file=sys.stderr)
        args.display = None

    if args.contentType:
        if args.extension:
            flushPrint('Warning: both --extension and --type provided, respecting only --type', file=sys.stderr)

        extension = mimetypes.guess_extension(args.contentType, strict=False)
        if extension:
            args.extension = extension.lstrip('.')
        logger.debug(f'Type parsed to extension "{args.extension}"')

    return args
