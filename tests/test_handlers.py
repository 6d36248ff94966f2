import pytest
from aiohttp import web
from aiohttp.test_utils import TestClient, TestServer

from feedback_rewards import setup_feedback_rewards
from feedback_rewards.feedback import (
    FeedbackHandler,
    RewardStateHandler,
    AchievementHandler
)
from feedback_rewards.storage import StorageUnavailable

from conftest import sample_text


@pytest.fixture
def app(service):
    application = web.Application()
    setup_feedback_rewards(application, service=service, base_path='/api/')
    return application


async def make_client(app):
    client = TestClient(TestServer(app))
    await client.start_server()
    return client


def feedback(content=None, user='u-1', project='p-1'):
    return {
        'project_id': project,
        'user_id': user,
        'content': sample_text() if content is None else content,
    }


# =============================================================================
# FEEDBACK
# =============================================================================

class TestFeedbackEndpoints:

    @pytest.mark.asyncio
    async def test_submit(self, app):
        client = await make_client(app)
        try:
            resp = await client.post('/api/feedback', json=feedback())
            assert resp.status == 201
            data = await resp.json()
            assert data['success'] is True
            assert data['points_awarded'] == 28
            assert data['quality_metrics']['source'] == 'local'
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_blank_content(self, app, storage):
        client = await make_client(app)
        try:
            resp = await client.post('/api/feedback', json=feedback(content='   '))
            assert resp.status == 400
            assert storage.feedback == {}
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_invalid_json(self, app):
        client = await make_client(app)
        try:
            resp = await client.post(
                '/api/feedback',
                data='{not json',
                headers={'Content-Type': 'application/json'}
            )
            assert resp.status == 400
            resp = await client.post('/api/feedback', json=['a', 'list'])
            assert resp.status == 400
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_feedback_not_saved(self, app, storage):
        storage.fail('insert_feedback', StorageUnavailable('database down'))
        client = await make_client(app)
        try:
            resp = await client.post('/api/feedback', json=feedback())
            assert resp.status == 500
            data = await resp.json()
            assert data['success'] is False
            assert storage.activity == {}
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_analyze(self, app, storage):
        client = await make_client(app)
        try:
            resp = await client.post(
                '/api/feedback/analyze', json={'content': sample_text()}
            )
            assert resp.status == 200
            data = await resp.json()
            assert data['quality_points'] == 18
            assert data['suggestions'] == []
            assert storage.feedback == {}

            resp = await client.post('/api/feedback/analyze', json={})
            assert resp.status == 400
        finally:
            await client.close()


# =============================================================================
# REWARDS AND ACHIEVEMENTS
# =============================================================================

class TestRewardEndpoints:

    @pytest.mark.asyncio
    async def test_state(self, app):
        client = await make_client(app)
        try:
            await client.post('/api/feedback', json=feedback())
            resp = await client.get('/api/rewards/u-1')
            assert resp.status == 200
            data = await resp.json()
            assert data['points'] == 28
            assert data['level'] == 1
            assert data['points_to_next_level'] == 100
            assert len(data['recent_activity']) == 2

            resp = await client.get('/api/rewards/u-1', params={'limit': 'x'})
            assert resp.status == 400
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_unknown_user_has_defaults(self, app):
        client = await make_client(app)
        try:
            resp = await client.get('/api/rewards/nobody')
            data = await resp.json()
            assert (data['points'], data['level']) == (0, 1)
            assert data['recent_activity'] == []
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_reconcile(self, app, storage):
        client = await make_client(app)
        try:
            await client.post('/api/feedback', json=feedback())
            storage.set_points('u-1', 5)
            resp = await client.post('/api/rewards/u-1/reconcile')
            assert resp.status == 200
            data = await resp.json()
            assert data['drift'] == 23
            assert data['corrected_total'] == 28
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_reconcile_storage_down(self, app, storage):
        storage.fail('sum_activity_points', StorageUnavailable('down'))
        client = await make_client(app)
        try:
            resp = await client.post('/api/rewards/u-1/reconcile')
            assert resp.status == 500
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_achievements(self, app):
        client = await make_client(app)
        try:
            resp = await client.get('/api/achievements')
            catalog = await resp.json()
            assert [a['achievement_id'] for a in catalog] == [
                'feedback_champion', 'quality_reviewer'
            ]

            for n in range(10):
                await client.post(
                    '/api/feedback', json=feedback(content='ok', project=f'p-{n}')
                )
            resp = await client.get('/api/achievements/u-1')
            earned = await resp.json()
            assert [a['achievement_id'] for a in earned] == ['feedback_champion']
        finally:
            await client.close()


class TestWithoutManager:

    @pytest.mark.asyncio
    async def test_routes_answer_json_500(self):
        bare = web.Application()
        FeedbackHandler.configure(bare, '/feedback')
        RewardStateHandler.configure(bare, '/rewards')
        AchievementHandler.configure(bare, '/achievements')
        client = await make_client(bare)
        try:
            for method, path in (
                ('POST', '/feedback'),
                ('GET', '/rewards/u-1'),
                ('POST', '/rewards/u-1/reconcile'),
                ('GET', '/achievements'),
                ('GET', '/achievements/u-1'),
            ):
                resp = await client.request(method, path, json={})
                assert resp.status == 500, path
                data = await resp.json()
                assert data['error'] == 'Feedback rewards not initialized'
        finally:
            await client.close()
