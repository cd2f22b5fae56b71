from __future__ import annotations
import os

from flask import Flask, Response, jsonify, request

from mapping2tiny.api.orchestrator import REGISTRY, cancel_job, start_job
from mapping2tiny.config.env import get_service_config
from mapping2tiny.formats.registry import AUTODETECT, format_ids, writer_ids
from mapping2tiny.logger import initialize_logger

app = Flask(__name__)

# Configuration helpers (overridable via app.config in tests)


def _get_api_key() -> str | None:
    if 'API_KEY' in app.config:
        return app.config.get('API_KEY')
    return get_service_config().api_key


def _check_api_key():
    api_key = _get_api_key()
    if api_key:
        provided = request.headers.get('X-API-Key')
        if provided != api_key:
            return jsonify({'error': 'unauthorized'}), 401
    return None


@app.before_request
def _auth():
    # Only enforce for job routes
    if request.path.startswith('/jobs'):
        return _check_api_key()
    return None


@app.get('/formats')
def get_formats():
    return jsonify({'input': format_ids() + [AUTODETECT], 'output': writer_ids()})


@app.post('/jobs')
def post_jobs():
    payload = request.get_json(force=True, silent=True) or {}
    if not payload.get('content') and not payload.get('content_base64'):
        return jsonify({'error': 'content is required'}), 400
    try:
        jid = start_job(payload)
    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    return jsonify({'job_id': jid, 'status': 'queued'})


@app.get('/jobs/<jid>')
def get_job(jid: str):
    job = REGISTRY.get(jid)
    if not job:
        return jsonify({'error': 'not_found'}), 404
    return jsonify(job.to_json())


@app.get('/jobs/<jid>/output')
def get_output(jid: str):
    job = REGISTRY.get(jid)
    if not job:
        return jsonify({'error': 'not_found'}), 404
    if job.status != 'completed' or not job.output_path.exists():
        return jsonify({'error': 'output_not_ready', 'status': job.status}), 404
    return Response(job.output_path.read_text(encoding='utf-8'), mimetype='text/plain')


@app.delete('/jobs/<jid>')
def delete_job(jid: str):
    if not cancel_job(jid):
        return jsonify({'error': 'not_found'}), 404
    job = REGISTRY.get(jid)
    return jsonify({'job_id': jid, 'status': job.status, 'cancel_requested': True})


if __name__ == '__main__':
    initialize_logger()
    app.run(host='0.0.0.0', port=int(os.environ.get('PORT', '8000')))
