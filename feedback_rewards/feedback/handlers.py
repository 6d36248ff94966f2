"""
Feedback Rewards Handlers.

REST endpoints exposing the submission pipeline and the reward read API.

Endpoints:
    - POST /feedback - Submit feedback
    - POST /feedback/analyze - Score a text without storing it
    - GET /rewards/{user_id} - Reward state and recent activity
    - POST /rewards/{user_id}/reconcile - Reconcile a user's total
    - GET /achievements - Achievement catalog
    - GET /achievements/{user_id} - Achievements earned by a user
"""
from aiohttp import web
from navigator.views import BaseHandler
from ..exceptions import ValidationError
from ..storage import StorageError


def _service(request: web.Request):
    manager = request.app.get('feedback_rewards')
    return manager.service if manager else None


async def _json_body(request: web.Request) -> dict:
    try:
        data = await request.json()
    except ValueError as err:
        raise ValidationError("Request body must be valid JSON") from err
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


class FeedbackHandler(BaseHandler):
    """Feedback submission and analysis preview."""

    async def submit_feedback(self, request: web.Request) -> web.Response:
        """
        Submit feedback.

        Body:
            - project_id: Project receiving the feedback
            - user_id: Author
            - content: Free text (required, not blank)
            - category, subcategory: Optional classification
            - section_id, section_name, section_type: Optional section
        """
        service = _service(request)
        if service is None:
            return self.json_response(
                {'error': 'Feedback rewards not initialized'},
                status=500
            )
        try:
            data = await _json_body(request)
            result = await service.submit_feedback(data)
        except ValidationError as err:
            return self.json_response(
                {'error': err.message, **err.payload},
                status=400
            )
        except Exception as err:
            return self.json_response({'error': str(err)}, status=500)
        status = 201 if result.success else 500
        return self.json_response(result.to_dict(), status=status)

    async def analyze(self, request: web.Request) -> web.Response:
        """Score ``content`` and return metrics, bonus and suggestions."""
        service = _service(request)
        if service is None:
            return self.json_response(
                {'error': 'Feedback rewards not initialized'},
                status=500
            )
        try:
            data = await _json_body(request)
            preview = await service.analyze_preview(data.get('content', ''))
            return self.json_response(preview)
        except ValidationError as err:
            return self.json_response({'error': err.message}, status=400)
        except Exception as err:
            return self.json_response({'error': str(err)}, status=500)

    @classmethod
    def configure(cls, app: web.Application, path: str):
        """Configure routes for feedback submission."""
        handler = cls()
        app.router.add_post(f'{path}', handler.submit_feedback)
        app.router.add_post(f'{path}/analyze', handler.analyze)


class RewardStateHandler(BaseHandler):
    """Reward state and reconciliation of a user."""

    async def get_state(self, request: web.Request) -> web.Response:
        service = _service(request)
        if service is None:
            return self.json_response(
                {'error': 'Feedback rewards not initialized'},
                status=500
            )
        user_id = request.match_info['user_id']
        try:
            limit = int(request.query.get('limit', 10))
        except ValueError:
            return self.json_response(
                {'error': 'limit must be an integer'},
                status=400
            )
        try:
            state = await service.get_reward_state(user_id)
            activity = await service.get_activity(user_id, limit=limit)
        except StorageError as err:
            return self.json_response({'error': str(err)}, status=500)
        return self.json_response({
            **state.to_dict(),
            'recent_activity': [record.to_dict() for record in activity],
        })

    async def reconcile(self, request: web.Request) -> web.Response:
        service = _service(request)
        if service is None:
            return self.json_response(
                {'error': 'Feedback rewards not initialized'},
                status=500
            )
        user_id = request.match_info['user_id']
        try:
            result = await service.reconcile(user_id)
        except StorageError as err:
            return self.json_response({'error': str(err)}, status=500)
        status = 200 if result.success else 500
        return self.json_response(result.to_dict(), status=status)

    @classmethod
    def configure(cls, app: web.Application, path: str):
        """Configure routes for reward state."""
        handler = cls()
        app.router.add_get(f'{path}/{{user_id}}', handler.get_state)
        app.router.add_post(
            f'{path}/{{user_id}}/reconcile',
            handler.reconcile
        )


class AchievementHandler(BaseHandler):
    """Achievement catalog and awards."""

    async def get_catalog(self, request: web.Request) -> web.Response:
        service = _service(request)
        if service is None:
            return self.json_response(
                {'error': 'Feedback rewards not initialized'},
                status=500
            )
        return self.json_response(
            [definition.to_dict() for definition in service.catalog()]
        )

    async def get_user_achievements(self, request: web.Request) -> web.Response:
        service = _service(request)
        if service is None:
            return self.json_response(
                {'error': 'Feedback rewards not initialized'},
                status=500
            )
        user_id = request.match_info['user_id']
        try:
            awards = await service.get_achievements(user_id)
        except StorageError as err:
            return self.json_response({'error': str(err)}, status=500)
        return self.json_response([award.to_dict() for award in awards])

    @classmethod
    def configure(cls, app: web.Application, path: str):
        """Configure routes for achievements."""
        handler = cls()
        app.router.add_get(f'{path}', handler.get_catalog)
        app.router.add_get(f'{path}/{{user_id}}', handler.get_user_achievements)
