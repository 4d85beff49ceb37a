
"""Per-dataset staged files and the remote transfer directory."""

import os
import time
import shutil
import logging

from bdbag import bdbag_api
from bdbag.bdbagit import BagError, BagValidationError

from .exception import StagingError

logger = logging.getLogger(__name__)

class StagingArea (object):
    """Track files to copy to the transfer directory and files to delete afterwards.

    Files are staged while a dataset is being processed and flushed
    when processing moves on to the next dataset (or the run ends).
    """

    copy_attempts = 3
    copy_holdoff_seconds = 1.0

    def __init__(self, transfer_directory):
        """Construct StagingArea for the given remote transfer directory.

        :param transfer_directory: Directory receiving the submission files (created if missing)
        """
        self.transfer_directory = transfer_directory
        self.files_to_copy = []
        self.files_to_delete = []
        os.makedirs(transfer_directory, exist_ok=True)

    @staticmethod
    def _add_if_new(paths, path):
        if path and path not in paths:
            paths.append(path)

    def stage(self, path):
        """Stage a local file for transfer at the next flush."""
        self._add_if_new(self.files_to_copy, path)

    def target_path(self, path):
        return os.path.join(self.transfer_directory, os.path.basename(path))

    def exists_remotely(self, filename, optional_suffix=''):
        """Return True if filename (or filename + optional_suffix) is already in the transfer directory."""
        if os.path.isfile(self.target_path(filename)):
            return True
        if optional_suffix:
            return os.path.isfile(self.target_path(filename + optional_suffix))
        return False

    def _copy_with_retry(self, source, target):
        holdoff = self.copy_holdoff_seconds
        for attempt in range(1, self.copy_attempts + 1):
            try:
                shutil.copy2(source, target)
                return
            except OSError as e:
                if attempt == self.copy_attempts:
                    raise
                logger.debug('Copy of "%s" failed (attempt %d): %s; retrying in %.1fs' % (source, attempt, e, holdoff))
                time.sleep(holdoff)
                holdoff *= 2

    def flush(self):
        """Copy staged files to the transfer directory then delete copied sources.

        Returns the list of files which could not be copied; they
        remain staged for the next flush.  Deletion failures are logged
        and retried on the next flush.
        """
        retry = []
        for source in self.files_to_copy:
            if not os.path.isfile(source):
                continue
            target = self.target_path(source)
            if os.path.normcase(os.path.abspath(source)) == os.path.normcase(os.path.abspath(target)):
                continue
            try:
                self._copy_with_retry(source, target)
                logger.debug('Copied "%s" to transfer directory' % (source,))
                self._add_if_new(self.files_to_delete, source)
            except OSError as e:
                logger.error('Exception copying "%s" to transfer directory "%s": %s' % (source, self.transfer_directory, e))
                retry.append(source)

        self.files_to_copy = list(retry)
        self.files_to_delete = [ path for path in self.files_to_delete if path not in retry ]

        undeleted = []
        for path in self.files_to_delete:
            try:
                if os.path.isfile(path):
                    os.remove(path)
            except OSError as e:
                logger.warning('Unable to delete staged file "%s": %s' % (path, e))
                undeleted.append(path)
        self.files_to_delete = undeleted

        return retry

    def finish(self):
        """Flush for the last time and return the files to skip during transfer.

        Raises StagingError if any staged file still could not be copied.
        """
        failed = self.flush()
        if failed:
            raise StagingError('Unable to copy %d staged file(s) to "%s", first: %s' % (len(failed), self.transfer_directory, failed[0]))
        if self.files_to_delete:
            logger.warning('%d staged file(s) could not be deleted and will be skipped during transfer' % len(self.files_to_delete))
        return list(self.files_to_delete)

    def make_upload_bag(self):
        """Convert the transfer directory in place into a validated BDBag."""
        if os.getenv('PXPKG_SKIP_BDBAG', 'false').lower() == 'true':
            logger.info('SKIPPING bag creation for "%s" due to PXPKG_SKIP_BDBAG environment variable!' % self.transfer_directory)
            return
        try:
            logger.debug('Creating bag at "%s"' % (self.transfer_directory,))
            bdbag_api.make_bag(self.transfer_directory, algs=['md5', 'sha256'])
            bdbag_api.validate_bag(self.transfer_directory)
            logger.info('Bag valid at %s' % self.transfer_directory)
        except (BagError, BagValidationError) as e:
            logger.error('Bag creation failed for "%s" with error "%s"' % (self.transfer_directory, e,))
            raise StagingError(e)
