"""
Tests for the outbound repository write queue.
"""

import asyncio
import time
from unittest.mock import MagicMock

from conftest import drain
from flowgraph.errors import RepositoryFailure
from flowgraph.write_queue import ABANDONED, DONE, FAILED, PENDING, WriteCall, WriteQueue


class TestWriteQueue:

    def test_queued_without_loop(self, repository):
        queue = WriteQueue(repository)
        write = queue.submit('add node', [WriteCall('create_node', ({'id': 'n'},))])

        assert write.status == PENDING
        assert queue.pending_count == 1
        repository.create_node.assert_not_called()

        drain(queue)

        assert write.status == DONE
        assert queue.pending_count == 0
        repository.create_node.assert_called_once_with({'id': 'n'})

    def test_calls_run_in_order(self, repository):
        queue = WriteQueue(repository)
        queue.submit('delete node', [
            WriteCall('delete_edge', ('e',)),
            WriteCall('delete_option', ('o',)),
            WriteCall('delete_node', ('n',)),
        ])
        drain(queue)

        assert [c[0] for c in repository.method_calls] == ['delete_edge', 'delete_option', 'delete_node']

    def test_failure_stops_the_write(self, repository):
        repository.delete_option.side_effect = Exception('boom')
        queue = WriteQueue(repository)
        failures = []
        queue.on('failure', lambda write, failure: failures.append(failure))

        write = queue.submit('delete node', [
            WriteCall('delete_option', ('o',)),
            WriteCall('delete_node', ('n',)),
        ])
        drain(queue)

        assert write.status == FAILED
        assert isinstance(write.error, RepositoryFailure)
        assert write.error.operation == 'delete_option'
        assert failures == [write.error]
        assert queue.failures == [write.error]
        repository.delete_node.assert_not_called()

        queue.clear_failures()
        assert queue.failures == []

    def test_timeout(self):
        repository = MagicMock()
        repository.create_edge.side_effect = lambda row: time.sleep(0.5)
        queue = WriteQueue(repository, timeout_seconds=0.05)

        write = queue.submit('add edge', [WriteCall('create_edge', ({'id': 'e'},))])
        drain(queue)

        assert write.status == FAILED
        assert 'timed out' in str(write.error)

    def test_success_callbacks(self, repository):
        queue = WriteQueue(repository)
        acknowledged = []
        queue.on('success', lambda write: acknowledged.append(write.description))

        queue.submit('save layout', [WriteCall('batch_update_positions', ([],))],
                     on_success=lambda write: acknowledged.append('own'))
        drain(queue)

        assert acknowledged == ['own', 'save layout']

    def test_callback_errors_are_contained(self, repository):
        queue = WriteQueue(repository)

        def broken(write):
            raise RuntimeError('ui gone')

        queue.on('success', broken)
        write = queue.submit('x', [WriteCall('delete_edge', ('e',))])
        drain(queue)

        assert write.status == DONE

    def test_off(self, repository):
        queue = WriteQueue(repository)
        seen = []
        callback = seen.append
        queue.on('success', callback)
        queue.off('success', callback)
        queue.submit('x', [WriteCall('delete_edge', ('e',))])
        drain(queue)
        assert seen == []

    def test_dispatches_immediately_inside_a_loop(self, repository):
        queue = WriteQueue(repository)

        async def edit():
            write = queue.submit('add node', [WriteCall('create_node', ({'id': 'n'},))])
            assert queue.pending_count == 1
            await queue.drain()
            return write

        write = asyncio.run(edit())

        assert write.status == DONE
        repository.create_node.assert_called_once()

    def test_abandon(self, repository):
        queue = WriteQueue(repository)
        queue.submit('a', [WriteCall('delete_edge', ('e',))])
        queue.submit('b', [WriteCall('delete_edge', ('f',))])

        assert queue.abandon() == 2
        drain(queue)
        repository.delete_edge.assert_not_called()

    def test_abandoned_in_flight_write_reports_nothing(self):
        repository = MagicMock()

        def slow_failure(row):
            time.sleep(0.05)
            raise Exception('old session')

        repository.create_node.side_effect = slow_failure
        queue = WriteQueue(repository)
        seen = []
        queue.on('failure', lambda write, failure: seen.append(failure))
        queue.on('success', seen.append)

        async def leave():
            old = queue.submit('add node', [WriteCall('create_node', ({'id': 'n'},))],
                               on_success=seen.append)
            await asyncio.sleep(0)
            assert queue.abandon() == 1
            fresh = queue.submit('delete edge', [WriteCall('delete_edge', ('e',))])
            await asyncio.sleep(0.2)
            return old, fresh

        old, fresh = asyncio.run(leave())

        assert old.status == ABANDONED
        assert 'old session' in str(old.error)
        assert queue.failures == []
        assert seen == [fresh]
        assert fresh.status == DONE

    def test_abandoned_success_skips_handlers(self, repository):
        queue = WriteQueue(repository)
        acknowledged = []

        async def leave():
            write = queue.submit('save layout', [WriteCall('batch_update_positions', ([],))],
                                 on_success=acknowledged.append)
            queue.abandon()
            await asyncio.sleep(0.1)
            return write

        write = asyncio.run(leave())

        assert write.status == ABANDONED
        assert acknowledged == []
        repository.batch_update_positions.assert_called_once()
