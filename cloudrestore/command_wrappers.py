# -*- coding: utf-8 -*-
# © Copyright EnterpriseDB UK Limited 2024-2025
#
# This file is part of cloudrestore.
#
# cloudrestore is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# cloudrestore is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License
# along with cloudrestore.  If not, see <http://www.gnu.org/licenses/>.

"""
This module contains a wrapper for shell commands
"""

import logging
import os
import select
import subprocess

import cloudrestore.utils
from cloudrestore.cancellation import check_cancellation
from cloudrestore.exceptions import CommandFailedException, OperationCancelled

_logger = logging.getLogger(__name__)

#: Seconds between two checks of the cancellation token while a child runs
POLL_INTERVAL = 0.5

#: Seconds granted to a child process between SIGTERM and SIGKILL
TERMINATE_TIMEOUT = 10


class StreamLineProcessor(object):
    """
    Class deputed to reading lines from a file object, using a buffered read.

    NOTE: This class never call os.read() twice in a row. And is designed to
    work with the select.select() method.
    """

    def __init__(self, fobject, handler):
        """
        :param file fobject: The file that is being read
        :param callable handler: The function (taking only one unicode string
         argument) which will be called for every line
        """
        self._file = fobject
        self._handler = handler
        self._buf = b""

    def fileno(self):
        """
        Method used by select.select() to get the underlying file descriptor.

        :rtype: the underlying file descriptor
        """
        return self._file.fileno()

    def process(self):
        """
        Read the ready data from the stream and for each line found invoke the
        handler.

        :return bool: True when End Of File has been reached
        """
        data = os.read(self._file.fileno(), 4096)
        # If nothing has been read, we reached the EOF
        if not data:
            self._file.close()
            # Handle the last line (always incomplete, maybe empty)
            self._handler(self._buf.decode("utf-8", "replace"))
            return True
        self._buf += data
        # If no '\n' is present, we just read a part of a very long line.
        # Nothing to do at the moment.
        if b"\n" not in self._buf:
            return False
        tmp = self._buf.split(b"\n")
        # Leave the remainder in self._buf
        self._buf = tmp[-1]
        # Call the handler for each complete line.
        for line in tmp[:-1]:
            self._handler(line.decode("utf-8", "replace"))
        return False


class Command(object):
    """
    Wrapper for a system command
    """

    def __init__(
        self,
        cmd,
        args=None,
        env=None,
        path=None,
        close_fds=True,
        out_handler=None,
        err_handler=None,
        cancellation=None,
    ):
        """
        If the `args` argument is specified the arguments will be always added
        to the ones eventually passed with the actual invocation.

        The `env` argument, when present, is the complete environment of
        the child process: the environment of the current process is not
        merged into it. When missing the child inherits the current
        environment.

        The subprocess output and error stream will be processed through
        the output and error handler, respectively defined through the
        `out_handler` and `err_handler` arguments. If not provided every line
        will be sent to the log respectively at INFO and WARNING level.

        If a `cancellation` token is given the child process is
        terminated as soon as the token is cancelled or expires, and
        OperationCancelled is raised.

        :param str cmd: The command to execute
        :param list[str]|None args: List of additional arguments to append
        :param collections.abc.Mapping|None env: the child environment
        :param str path: PATH to be used while searching for `cmd`
        :param bool close_fds: If set, close all the extra file descriptors
        :param callable out_handler: handler for lines sent on stdout
        :param callable err_handler: handler for lines sent on stderr
        :param cloudrestore.cancellation.Cancellation|None cancellation:
            token checked while the command runs
        """
        self.pipe = None
        self.cmd = cmd
        self.args = list(args) if args is not None else []
        self.close_fds = close_fds
        self.cancellation = cancellation
        self.ret = None
        self.out = None
        self.err = None
        self.env = dict(env) if env is not None else None
        if path is None and self.env is not None:
            path = self.env.get("PATH")
        self.path = path
        # Find the absolute path to the command to execute
        full_path = cloudrestore.utils.which(self.cmd, self.path)
        if not full_path:
            raise CommandFailedException("%s not in PATH" % self.cmd)
        self.cmd = full_path
        # If an output handler has been provided use it, otherwise log the
        # stdout as INFO
        if out_handler:
            self.out_handler = out_handler
        else:
            self.out_handler = self.make_logging_handler(logging.INFO)
        # If an error handler has been provided use it, otherwise log the
        # stderr as WARNING
        if err_handler:
            self.err_handler = err_handler
        else:
            self.err_handler = self.make_logging_handler(logging.WARNING)

    def get_output(self, *args, **kwargs):
        """
        Run the command and return the output and the error as a tuple.

        The return code is not returned, but it can be accessed as an attribute
        of the Command object, as well as the output and the error strings.

        :rtype: tuple[str, str]
        :raise: OperationCancelled
        """
        out = []
        err = []
        self.execute(out_handler=out.append, err_handler=err.append, *args, **kwargs)
        self.out = "\n".join(out)
        self.err = "\n".join(err)

        _logger.debug("Command stdout: %s", self.out)
        _logger.debug("Command stderr: %s", self.err)
        return self.out, self.err

    def execute(self, *args, **kwargs):
        """
        Execute the command and pass the output to the configured handlers

        The subprocess output and error stream will be processed through
        the output and error handler, respectively defined through the
        `out_handler` and `err_handler` arguments. If not provided every line
        will be sent to the log respectively at INFO and WARNING level.

        Every keyword argument can be specified both in the class constructor
        and during the method call. If specified in both places,
        the method arguments will take the precedence over
        the constructor arguments.

        :rtype: int
        :raise: OperationCancelled
        """
        # Check keyword arguments
        close_fds = kwargs.pop("close_fds", self.close_fds)
        out_handler = kwargs.pop("out_handler", self.out_handler)
        err_handler = kwargs.pop("err_handler", self.err_handler)
        cancellation = kwargs.pop("cancellation", self.cancellation)
        if len(kwargs):
            raise TypeError(
                "execute() got an unexpected keyword argument %r" % kwargs.popitem()[0]
            )

        # Reset status
        self.ret = None
        self.out = None
        self.err = None

        # Don't start anything if we are already asked to stop
        check_cancellation(cancellation)

        # Create the subprocess and save it in the current object to be usable
        # by signal handlers
        pipe = self._build_pipe(args, close_fds)
        self.pipe = pipe

        # Prepare the list of processors
        processors = [
            StreamLineProcessor(pipe.stdout, out_handler),
            StreamLineProcessor(pipe.stderr, err_handler),
        ]

        try:
            # Read the streams until the subprocess exits
            self.pipe_processor_loop(processors, cancellation)
            # Reap the zombie and read the exit code
            self._wait(pipe, cancellation)
        except OperationCancelled as exc:
            _logger.warning("Terminating %s: %s", self.cmd, exc)
            self._terminate(pipe)
            raise
        finally:
            # Remove the pipe from the object
            self.pipe = None

        self.ret = pipe.returncode
        _logger.debug("Command return code: %s", self.ret)
        return self.ret

    def _build_pipe(self, args, close_fds):
        """
        Build the Pipe object used by the Command

        The resulting command will be composed by:
           self.cmd + self.args + args

        :param args: extra arguments for the subprocess
        :param close_fds: if True all file descriptors except 0, 1 and 2
            will be closed before the child process is executed.
        :rtype: subprocess.Popen
        """
        # Append the argument provided to this method ot the base argument list
        cmd = [self.cmd] + self.args + list(args)

        # Log the command we are about to execute
        _logger.debug("Command: %r", cmd)
        return subprocess.Popen(
            cmd,
            shell=False,
            env=self.env,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            close_fds=close_fds,
        )

    @staticmethod
    def _wait(pipe, cancellation):
        """
        Wait for the process exit, checking the cancellation token if any

        :param subprocess.Popen pipe: the running process
        :param cloudrestore.cancellation.Cancellation|None cancellation:
        """
        if cancellation is None:
            pipe.wait()
            return
        while True:
            try:
                pipe.wait(timeout=POLL_INTERVAL)
                return
            except subprocess.TimeoutExpired:
                cancellation.check()

    @staticmethod
    def _terminate(pipe):
        """
        Stop a running process: SIGTERM first, then SIGKILL if it
        doesn't exit within TERMINATE_TIMEOUT seconds

        :param subprocess.Popen pipe: the running process
        """
        pipe.terminate()
        try:
            pipe.wait(timeout=TERMINATE_TIMEOUT)
        except subprocess.TimeoutExpired:
            _logger.warning("Process %s did not terminate, killing it", pipe.pid)
            pipe.kill()
            pipe.wait()
        for stream in (pipe.stdout, pipe.stderr):
            if stream is not None:
                stream.close()

    @staticmethod
    def pipe_processor_loop(processors, cancellation=None):
        """
        Process the output received through the pipe until all the provided
        StreamLineProcessor reach the EOF.

        :param list[StreamLineProcessor] processors: a list of
            StreamLineProcessor
        :param cloudrestore.cancellation.Cancellation|None cancellation:
            token checked between two reads
        :raise OperationCancelled: if the token is cancelled
        """
        timeout = POLL_INTERVAL if cancellation is not None else None
        # Loop until all the streams reaches the EOF
        while processors:
            check_cancellation(cancellation)
            ready = select.select(processors, [], [], timeout)[0]

            # For each ready StreamLineProcessor invoke the process() method
            for stream in ready:
                eof = stream.process()
                # Got EOF on this stream
                if eof:
                    # Remove the stream from the list of valid processors
                    processors.remove(stream)

    @classmethod
    def make_logging_handler(cls, level, prefix=None):
        """
        Build a handler function that logs every line it receives.

        The resulting function logs its input at the specified level
        with an optional prefix.

        :param level: The log level to use
        :param prefix: An optional prefix to prepend to the line
        :return: handler function
        """
        class_logger = logging.getLogger(cls.__name__)

        def handler(line):
            if line:
                if prefix:
                    class_logger.log(level, "%s%s", prefix, line)
                else:
                    class_logger.log(level, "%s", line)

        return handler


class BarmanCloudCommand(Command):
    """
    Base class for the barman-cloud command line tools.

    Every tool streams its output to the log, prefixed with the name
    of the tool.
    """

    COMMAND = None

    def __init__(self, args=None, env=None, path=None, cancellation=None, **kwargs):
        prefix = "%s: " % self.COMMAND
        kwargs.setdefault(
            "out_handler", self.make_logging_handler(logging.INFO, prefix)
        )
        kwargs.setdefault(
            "err_handler", self.make_logging_handler(logging.WARNING, prefix)
        )
        super(BarmanCloudCommand, self).__init__(
            self.COMMAND,
            args=args,
            env=env,
            path=path,
            cancellation=cancellation,
            **kwargs
        )


class BarmanCloudBackupList(BarmanCloudCommand):
    """
    Wrapper for barman-cloud-backup-list
    """

    COMMAND = "barman-cloud-backup-list"


class BarmanCloudRestore(BarmanCloudCommand):
    """
    Wrapper for barman-cloud-restore
    """

    COMMAND = "barman-cloud-restore"


class BarmanCloudWalRestore(BarmanCloudCommand):
    """
    Wrapper for barman-cloud-wal-restore
    """

    COMMAND = "barman-cloud-wal-restore"


class BarmanCloudCheckWalArchive(BarmanCloudCommand):
    """
    Wrapper for barman-cloud-check-wal-archive
    """

    COMMAND = "barman-cloud-check-wal-archive"
