"""Shared fixtures for flowgraph tests."""

import asyncio
import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from flowgraph.model import Flow, Node, Position
from flowgraph.store import GraphStore


def drain(store_or_queue):
    """Run every queued repository write to completion."""
    queue = getattr(store_or_queue, 'writes', store_or_queue)
    return asyncio.run(queue.drain())


def called_methods(repository):
    """Names of the repository methods called, in call order."""
    return [c[0] for c in repository.method_calls]


@pytest.fixture
def repository():
    repo = MagicMock()
    repo.backend_type = 'mock'
    return repo


@pytest.fixture
def flow():
    return Flow(id='flow-1', name='Atendimento')


@pytest.fixture
def start_node(flow):
    return Node(id='start', flow_id=flow.id, kind='start', title='Início', position=Position(100, 100))


@pytest.fixture
def store(repository, flow, start_node):
    graph = GraphStore(repository)
    graph.attach(flow, [start_node], [])
    return graph
