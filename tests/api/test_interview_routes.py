import io

import pytest

QUESTIONS = '/api/questions'


def _create(client, role='Backend Developer', mode='Technical', difficulty='Easy'):
    rv = client.post(f'{QUESTIONS}/create-interview', json={'role': role, 'mode': mode, 'difficulty': difficulty})
    assert rv.status_code == 201
    return rv.get_json()['interviewId']


def _evaluate(client, interview_id, number=1, question='What is normalization?', answer='Splitting tables.'):
    return client.post(f'{QUESTIONS}/evaluate', json={
        'interviewId': interview_id, 'questionNumber': number, 'question': question, 'answer': answer,
    })


def _frame(nose_x=0.5):
    points = [[0.5, 0.5]] * 468
    points[10] = [0.4, 0.3]
    points[152] = [0.6, 0.7]
    points[1] = [nose_x, 0.5]
    points[159], points[145] = [0.45, 0.45], [0.45, 0.49]
    points[386], points[374] = [0.55, 0.45], [0.55, 0.49]
    return [points]


def test_first_question(client, fake_model):
    rv = client.post(f'{QUESTIONS}/next-question', json={
        'role': 'Backend Developer', 'mode': 'Technical', 'difficulty': 'Easy', 'questionNumber': 1,
    })
    assert rv.status_code == 200
    assert rv.get_json() == {'question': 'What is normalization?', 'questionNumber': 1, 'attempts': 1}


def test_next_question_with_history_retries_duplicates(client, fake_model):
    rv = client.post(f'{QUESTIONS}/next-question', json={
        'role': 'Backend Developer', 'mode': 'Technical', 'difficulty': 'Medium', 'questionNumber': 2,
        'history': [{'question': 'What is normalization?', 'answer': 'Reducing redundancy.'}],
    })
    assert rv.status_code == 200
    assert rv.get_json()['attempts'] == 3
    assert len(fake_model.prompts) == 3


def test_next_question_validation_and_upstream_error(client, fake_model):
    assert client.post(f'{QUESTIONS}/next-question', json={'mode': 'HR'}).status_code == 400

    fake_model.question = 'Error: API request failed with status 500: boom'
    rv = client.post(f'{QUESTIONS}/next-question', json={'role': 'Data Analyst', 'mode': 'HR', 'difficulty': 'Easy'})
    assert rv.status_code == 500
    assert rv.get_json() == {'error': 'Failed to generate question'}


def test_create_interview_validation(auth_client):
    rv = auth_client.post(f'{QUESTIONS}/create-interview', json={'role': 'Dev', 'mode': 'Casual', 'difficulty': 'Easy'})
    assert rv.status_code == 400
    rv = auth_client.post(f'{QUESTIONS}/create-interview', json={'role': 'Dev'})
    assert rv.status_code == 400


def test_evaluate_and_status(app, auth_client, fake_model):
    interview_id = _create(auth_client)

    rv = _evaluate(auth_client, interview_id)
    assert rv.status_code == 202
    body = rv.get_json()
    assert body['status'] == 'pending'

    queue = app.extensions['prevue']['queue']
    assert queue.wait(body['taskId'], timeout=5)['status'] == 'done'

    rv = auth_client.get(f"{QUESTIONS}/evaluation-status/{body['taskId']}")
    assert rv.status_code == 200
    assert rv.get_json()['status'] == 'done'

    rv = auth_client.get(f'{QUESTIONS}/interview/{interview_id}')
    questions = rv.get_json()['interview']['questions']
    assert len(questions) == 1
    assert questions[0]['correctness'] == 8.0
    assert questions[0]['idealAnswer'] == fake_model.ideal_answer

    assert auth_client.get(f'{QUESTIONS}/evaluation-status/unknown').status_code == 404


def test_evaluate_validation(auth_client, fake_model):
    interview_id = _create(auth_client)
    assert auth_client.post(f'{QUESTIONS}/evaluate', json={'interviewId': interview_id}).status_code == 400
    assert _evaluate(auth_client, interview_id, number=0).status_code == 400
    assert _evaluate(auth_client, 'missing').status_code == 404


def test_re_evaluation_keeps_one_record(app, auth_client, fake_model):
    interview_id = _create(auth_client)
    queue = app.extensions['prevue']['queue']

    queue.wait(_evaluate(auth_client, interview_id, answer='first').get_json()['taskId'], timeout=5)
    queue.wait(_evaluate(auth_client, interview_id, answer='second').get_json()['taskId'], timeout=5)

    questions = auth_client.get(f'{QUESTIONS}/interview/{interview_id}').get_json()['interview']['questions']
    assert [q['answer'] for q in questions] == ['second']


def test_failed_evaluation_is_reported(app, auth_client, fake_model):
    interview_id = _create(auth_client)
    fake_model.evaluation = 'Error: API request failed with status 503: unavailable'

    task_id = _evaluate(auth_client, interview_id).get_json()['taskId']
    app.extensions['prevue']['queue'].wait(task_id, timeout=5)

    record = auth_client.get(f'{QUESTIONS}/evaluation-status/{task_id}').get_json()
    assert record['status'] == 'failed'
    assert 'status 503' in record['error']


def test_finalize_scenario(auth_client, fake_model):
    interview_id = _create(auth_client)
    assert _evaluate(auth_client, interview_id).status_code == 202

    # finalize waits for the pending evaluation before scoring
    rv = auth_client.post(f'{QUESTIONS}/finalize-interview', json={
        'interviewId': interview_id, 'eyeContact': 80, 'avgConfidence': 70, 'stability': 90,
    })
    assert rv.status_code == 200
    body = rv.get_json()
    assert body['totalScore'] == 7.3
    assert body['overallCorrectness'] == 8.0
    assert body['behavior']['confidence'] == 70.0
    assert len(body['feedbackSummary']['cons']) == 3

    # immutable once finalized
    rv = auth_client.post(f'{QUESTIONS}/finalize-interview', json={'interviewId': interview_id, 'eyeContact': 0})
    assert rv.status_code == 409
    assert _evaluate(auth_client, interview_id, number=2).status_code == 409

    interview = auth_client.get(f'{QUESTIONS}/interview/{interview_id}').get_json()['interview']
    assert interview['totalScore'] == 7.3
    assert interview['completedAt'] is not None


def test_finalize_with_frames(auth_client, fake_model):
    interview_id = _create(auth_client, mode='HR')
    frames = [{'faces': _frame(), 'timestamp': i * 0.2} for i in range(5)]
    rv = auth_client.post(f'{QUESTIONS}/finalize-interview', json={'interviewId': interview_id, 'frames': frames})
    assert rv.status_code == 200
    behavior = rv.get_json()['behavior']
    assert behavior['eyeContact'] == 100.0
    assert behavior['facePresence'] == 100.0
    # no answers: verbal 0, behavioral mean 100 -> 3.0
    assert rv.get_json()['totalScore'] == 3.0


@pytest.mark.parametrize('frames, status', [
    ([[], []], 200),
    ([[[[0.5]]]], 400),
])
def test_finalize_frame_edge_cases(auth_client, fake_model, frames, status):
    interview_id = _create(auth_client)
    rv = auth_client.post(f'{QUESTIONS}/finalize-interview', json={'interviewId': interview_id, 'frames': frames})
    assert rv.status_code == status
    if status == 200:
        assert rv.get_json()['behavior']['eyeContact'] == 0.0


def test_interviews_are_private(app, auth_client, signup, fake_model):
    interview_id = _create(auth_client)

    other = app.test_client()
    assert signup(other, name='Bob', email='bob@example.com').status_code == 201
    assert other.get(f'{QUESTIONS}/interview/{interview_id}').status_code == 404
    assert _evaluate(other, interview_id).status_code == 404
    assert other.get(f'{QUESTIONS}/user-interviews').get_json() == {'interviews': []}


def test_history_and_analytics(auth_client, fake_model):
    first = _create(auth_client)
    auth_client.post(f'{QUESTIONS}/finalize-interview', json={'interviewId': first, 'eyeContact': 50})
    second = _create(auth_client, mode='HR', difficulty='Hard')

    interviews = auth_client.get(f'{QUESTIONS}/user-interviews').get_json()['interviews']
    assert [i['_id'] for i in interviews] == [second, first]

    analytics = auth_client.get(f'{QUESTIONS}/analytics').get_json()
    assert analytics['totalInterviews'] == 2
    assert {m['mode'] for m in analytics['modeBreakdown']} == {'Technical', 'HR'}


def test_extract_role_from_resume(auth_client, fake_model):
    rv = auth_client.post(f'{QUESTIONS}/extract-role-from-resume', data={
        'resume': (io.BytesIO(b'Five years building Flask APIs on PostgreSQL.'), 'cv.txt'),
    }, content_type='multipart/form-data')
    assert rv.status_code == 200
    assert rv.get_json() == {'role': 'Backend Developer', 'resumeContext': 'Python and PostgreSQL APIs.'}

    rv = auth_client.post(f'{QUESTIONS}/extract-role-from-resume', data={
        'resume': (io.BytesIO(b'binary'), 'cv.png'),
    }, content_type='multipart/form-data')
    assert rv.status_code == 400

    fake_model.role = 'Error: API request failed with status 500: boom'
    rv = auth_client.post(f'{QUESTIONS}/extract-role-from-resume', data={
        'resume': (io.BytesIO(b'Data analyst with SQL.'), 'cv.txt'),
    }, content_type='multipart/form-data')
    assert rv.status_code == 502


def test_status_without_redis_reports_in_process_tasks(monkeypatch, settings, signup, fake_model):
    import redis
    from app import create_app

    def _unreachable(*args, **kwargs):
        raise redis.exceptions.ConnectionError('redis is down')

    monkeypatch.setattr(redis, 'from_url', _unreachable)
    app = create_app(settings)
    assert app.extensions['prevue']['redis'] is None
    queue = app.extensions['prevue']['queue']
    client = app.test_client()
    try:
        assert signup(client).status_code == 201
        interview_id = _create(client)
        task_id = _evaluate(client, interview_id).get_json()['taskId']
        assert queue.wait(task_id, timeout=5)['status'] == 'done'

        rv = client.get(f'{QUESTIONS}/evaluation-status/{task_id}')
        assert rv.status_code == 200
        assert rv.get_json() == {'taskId': task_id, 'status': 'done'}

        fake_model.evaluation = 'Error: API request failed with status 503: unavailable'
        task_id = _evaluate(client, interview_id, number=2).get_json()['taskId']
        queue.wait(task_id, timeout=5)
        record = client.get(f'{QUESTIONS}/evaluation-status/{task_id}').get_json()
        assert record['status'] == 'failed'
        assert 'status 503' in record['error']
    finally:
        queue.shutdown()
