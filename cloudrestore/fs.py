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
Filesystem operations on the restored data directory
"""

import logging
import os
import shutil

from cloudrestore.cancellation import check_cancellation
from cloudrestore.exceptions import FsOperationFailed
from cloudrestore.utils import force_str, fsync_dir, mkpath

_logger = logging.getLogger(__name__)

#: Name of the WAL directory inside PGDATA
PG_WAL_DIRECTORY = "pg_wal"

#: Suffix of the symbolic link staged before replacing the WAL directory
_STAGED_LINK_SUFFIX = ".relocating"


def ensure_directory_exists(dir_path):
    """
    Create a directory, and its parents, unless it already exists

    :param str dir_path: the directory
    :raise FsOperationFailed: if the path exists and is not a directory or
        the directory cannot be created
    """
    if os.path.exists(dir_path) and not os.path.isdir(dir_path):
        raise FsOperationFailed(
            "A file with the same name exists, but is not a directory: %s" % dir_path
        )
    try:
        mkpath(dir_path)
    except OSError as e:
        raise FsOperationFailed(
            "Unable to create directory %s: %s" % (dir_path, force_str(e))
        )


def ensure_parent_directory_exists(file_path):
    """
    :param str file_path: the file whose parent directory must exist
    :raise FsOperationFailed: if the directory cannot be created
    """
    ensure_directory_exists(os.path.dirname(os.path.abspath(file_path)))


def remove_file(file_path):
    """
    Remove a file, or a symbolic link, if it exists

    :param str file_path: the file to remove
    :return bool: True if something was removed
    :raise FsOperationFailed: if the path cannot be removed
    """
    try:
        os.unlink(file_path)
    except FileNotFoundError:
        return False
    except OSError as e:
        raise FsOperationFailed("Unable to remove %s: %s" % (file_path, force_str(e)))
    return True


def move_directory_content(source_dir, dest_dir, cancellation=None):
    """
    Move every entry of a directory into another one.

    Nothing is moved if an entry with the same name already exists in
    the destination, as overwriting it could lose data.

    :param str source_dir: the directory to empty
    :param str dest_dir: the directory receiving the entries
    :param cloudrestore.cancellation.Cancellation|None cancellation: checked
        before moving each entry
    :raise FsOperationFailed: on name collisions or if a move fails
    """
    try:
        entries = sorted(os.listdir(source_dir))
    except OSError as e:
        raise FsOperationFailed("Unable to list %s: %s" % (source_dir, force_str(e)))
    collisions = [
        name for name in entries if os.path.lexists(os.path.join(dest_dir, name))
    ]
    if collisions:
        raise FsOperationFailed(
            "Cannot move the content of %s to %s, these entries already "
            "exist in the destination: %s"
            % (source_dir, dest_dir, ", ".join(collisions))
        )
    for name in entries:
        check_cancellation(cancellation)
        source = os.path.join(source_dir, name)
        _logger.debug("Moving %s to %s", source, dest_dir)
        try:
            shutil.move(source, os.path.join(dest_dir, name))
        except (OSError, shutil.Error) as e:
            raise FsOperationFailed(
                "Unable to move %s to %s: %s" % (source, dest_dir, force_str(e))
            )


def _is_link_to(path, target):
    if not os.path.islink(path):
        return False
    return os.path.normpath(os.readlink(path)) == os.path.normpath(target)


def relocate_wal_directory(
    pgdata, wal_volume, wal_directory=PG_WAL_DIRECTORY, cancellation=None
):
    """
    Move the WAL files of a restored data directory to a dedicated volume,
    and replace the WAL directory with a symbolic link to the volume.

    The symbolic link is created beside the WAL directory first and then
    renamed over it once the directory is empty, so that an interrupted
    relocation can always be completed by running it again.

    :param str pgdata: the data directory
    :param str wal_volume: the mount point of the WAL volume
    :param str wal_directory: name of the WAL directory inside pgdata
    :param cloudrestore.cancellation.Cancellation|None cancellation: checked
        between the steps of the relocation
    :return bool: False if the symbolic link was already in place,
        True if the relocation has been performed
    :raise FsOperationFailed: if any of the steps fails
    """
    # the link target is resolved relative to pgdata, the moves are not
    pgdata = os.path.abspath(pgdata)
    wal_volume = os.path.abspath(wal_volume)
    pg_wal = os.path.join(pgdata, wal_directory)
    staged_link = pg_wal + _STAGED_LINK_SUFFIX

    # if the link is already present we have nothing to do
    if _is_link_to(pg_wal, wal_volume):
        _logger.info(
            "symlink to the WAL volume already present, "
            "skipping the custom WAL directory restore"
        )
        return False

    ensure_directory_exists(wal_volume)

    _logger.info("restoring WAL volume symlink and transferring data")
    if not os.path.lexists(pg_wal):
        # An interrupted relocation could have already removed the directory
        ensure_directory_exists(pg_wal)
    elif os.path.islink(pg_wal):
        _logger.warning(
            "%s is a symlink to %s, relocating its content to %s",
            pg_wal,
            os.readlink(pg_wal),
            wal_volume,
        )

    move_directory_content(pg_wal, wal_volume, cancellation)
    check_cancellation(cancellation)

    try:
        remove_file(staged_link)
        os.symlink(wal_volume, staged_link)
        if os.path.islink(pg_wal):
            os.unlink(pg_wal)
        else:
            os.rmdir(pg_wal)
        os.rename(staged_link, pg_wal)
        fsync_dir(pgdata)
    except OSError as e:
        raise FsOperationFailed(
            "Unable to replace %s with a symlink to %s: %s"
            % (pg_wal, wal_volume, force_str(e))
        )
    return True
