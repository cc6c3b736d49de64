# -*- coding: utf-8 -*-
"""
Schema Sync Web Application - Flask Backend
"""
from flask import Flask, request, jsonify
from flask_cors import CORS

from schema_sync.core import (
    ApplyError, ApplyInProgressError, CompletionError, ParseError, SchemaGraph, Settings,
    SchemaStore, SqlApplyController, ValidationError,
    apply_sql, generate_sql, normalize_sql, parse_sql, schema_to_dot, validate_sql,
)
from schema_sync.web_app.app_config import config
from schema_sync.web_app.completion import CompletionClient

app = Flask(__name__)
CORS(app)
app.config.from_object(config)
app.secret_key = config.SECRET_KEY  # 从环境变量加载

# 服务端保存的当前 schema（请求未携带 graph 时使用）
store = SchemaStore(settings=config.get_default_settings())
controller = SqlApplyController(store,
                                chunk_size=config.TYPING_CHUNK_SIZE,
                                interval=config.TYPING_INTERVAL)


def _request_data():
    return request.get_json(silent=True) or {}


def _previous_graph(data):
    """请求中的 graph，没有则使用服务端当前 schema"""
    if data.get('graph') is not None:
        return SchemaGraph.from_dict(data['graph'])
    return store.snapshot()


def _settings(data):
    return Settings.from_dict(data.get('settings'), defaults=store.settings)


def _error_response(error, status, **extra):
    body = {'error': str(error), 'errorType': type(error).__name__}
    body.update(extra)
    return jsonify(body), status


@app.route('/api/health')
def api_health():
    return jsonify({'status': 'ok'})


@app.route('/api/schema')
def api_schema():
    """当前服务端 schema"""
    return jsonify({
        'graph': store.snapshot().to_dict(),
        'sql': store.sql,
        'settings': store.settings.to_dict(),
        'isApplying': store.is_applying
    })


@app.route('/api/parse_sql', methods=['POST'])
def api_parse_sql():
    """解析SQL并生成 schema graph"""
    try:
        data = _request_data()
        sql = data.get('sql', '')
        if data.get('fix', False):
            sql = normalize_sql(sql)

        graph, warnings = parse_sql(sql, _previous_graph(data))
        return jsonify({'graph': graph.to_dict(), 'warnings': warnings})

    except (ParseError, ApplyError) as e:
        app.logger.info(f"SQL解析失败: {e}")
        return _error_response(e, 400)
    except Exception as e:
        app.logger.error(f"An unexpected error occurred in api_parse_sql: {e}")
        return jsonify({'error': str(e)}), 500


@app.route('/api/validate_sql', methods=['POST'])
def api_validate_sql():
    """SQL 预检查"""
    data = _request_data()
    return jsonify(validate_sql(data.get('sql', '')).to_dict())


@app.route('/api/normalize_sql', methods=['POST'])
def api_normalize_sql():
    """自动修复常见SQL问题"""
    data = _request_data()
    sql = data.get('sql', '')
    fixed = normalize_sql(sql)
    return jsonify({'sql': fixed, 'changed': fixed != sql})


@app.route('/api/generate_sql', methods=['POST'])
def api_generate_sql():
    """从 schema graph 生成SQL"""
    try:
        data = _request_data()
        graph = _previous_graph(data)
        sql = generate_sql(graph, _settings(data), dialect=data.get('dialect'))
        return jsonify({'sql': sql})

    except ValueError as e:
        return _error_response(e, 400)
    except Exception as e:
        app.logger.error(f"An unexpected error occurred in api_generate_sql: {e}")
        return jsonify({'error': str(e)}), 500


@app.route('/api/apply_sql', methods=['POST'])
def api_apply_sql():
    """
    应用编辑后的SQL

    携带 graph 时只返回新的 graph；否则替换服务端当前 schema
    """
    try:
        data = _request_data()
        sql = data.get('sql', '')
        fix = data.get('fix', True)
        if data.get('graph') is not None:
            result = apply_sql(sql, SchemaGraph.from_dict(data['graph']), fix=fix)
        else:
            controller.fix = fix
            result = controller.apply_text(sql)
        return jsonify(result.to_dict())

    except ValidationError as e:
        return _error_response(e, 400, findings=e.findings)
    except (ParseError, ApplyError) as e:
        return _error_response(e, 400)
    except ApplyInProgressError as e:
        return _error_response(e, 409)
    except Exception as e:
        app.logger.error(f"An unexpected error occurred in api_apply_sql: {e}")
        return jsonify({'error': str(e)}), 500


@app.route('/api/export_dot', methods=['POST'])
def api_export_dot():
    """导出 Graphviz DOT 源码"""
    data = _request_data()
    return jsonify({'dot': schema_to_dot(_previous_graph(data))})


@app.route('/api/generate_schema', methods=['POST'])
def api_generate_schema():
    """根据需求描述调用AI生成建表SQL并解析"""
    data = _request_data()
    description = (data.get('description') or '').strip()
    if not description:
        return jsonify({'error': 'Description cannot be empty'}), 400

    ai_config = config.get_ai_config(app.config)
    if not ai_config['api_key']:
        return jsonify({'error': 'AI completion is not configured'}), 503

    try:
        settings = _settings(data)
        client = CompletionClient(**ai_config)
        sql = client.generate_schema_sql(description, settings)
        app.logger.info(f"AI生成SQL长度: {len(sql)}")
        result = apply_sql(sql, _previous_graph(data))
        return jsonify(result.to_dict())

    except CompletionError as e:
        app.logger.error(f"AI生成SQL失败: {e}")
        return _error_response(e, 502)
    except ValidationError as e:
        return _error_response(e, 422, findings=e.findings)
    except (ParseError, ApplyError) as e:
        return _error_response(e, 422)
    except ValueError as e:
        return _error_response(e, 400)


if __name__ == '__main__':
    app.run(debug=getattr(config, 'DEBUG', False), host='0.0.0.0', port=5000)
