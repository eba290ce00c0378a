from flask import Flask, request, jsonify, current_app
from config import get_config
from models import db, User, TokenBlocklist
from extensions import jwt, bcrypt, limiter, cors
from errors import register_error_handlers
from sqlalchemy import text
from datetime import datetime
import logging
from logging.handlers import RotatingFileHandler
import os


# ============================================
# Logging 設定
# ============================================

def setup_logging(app):
    """
    設定完整的 logging 系統

    改進點:
    1. 分開 info 和 error logs
    2. 使用 RotatingFileHandler 避免 log 檔案過大
    3. handler 掛在 root logger, 各模組的 logging.getLogger(__name__) 都會寫進去
    """
    log_dir = app.config.get('LOG_DIR', 'logs')
    if not os.path.exists(log_dir):
        os.mkdir(log_dir)

    formatter = logging.Formatter(
        '[%(asctime)s] %(levelname)s in %(module)s: %(message)s'
    )

    # Info log handler (記錄一般資訊)
    info_handler = RotatingFileHandler(
        os.path.join(log_dir, 'app.log'),
        maxBytes=10240000,  # 10MB
        backupCount=10
    )
    info_handler.setLevel(logging.INFO)
    info_handler.setFormatter(formatter)

    # Error log handler (只記錄錯誤)
    error_handler = RotatingFileHandler(
        os.path.join(log_dir, 'error.log'),
        maxBytes=10240000,  # 10MB
        backupCount=10
    )
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.addHandler(info_handler)
    root_logger.addHandler(error_handler)
    root_logger.setLevel(app.config.get('LOG_LEVEL', 'INFO'))

    app.logger.info('Application startup')

# ============================================
# JWT callbacks
# ============================================

def register_jwt_callbacks():
    """JWT 驗證失敗時回傳統一格式的 401"""

    @jwt.user_lookup_loader
    def load_user(jwt_header, jwt_payload):
        """token 的 identity 必須對應到一個 active 的使用者"""
        user = db.session.get(User, int(jwt_payload['sub']))
        if not user or not user.is_active:
            return None
        return user

    @jwt.user_lookup_error_loader
    def user_lookup_error_callback(jwt_header, jwt_payload):
        current_app.logger.warning(f"Token for missing or inactive user: {jwt_payload.get('sub')}")
        return jsonify({
            'error': 'user_not_found',
            'message': 'User not found or inactive'
        }), 401

    @jwt.token_in_blocklist_loader
    def check_if_token_revoked(jwt_header, jwt_payload):
        jti = jwt_payload['jti']
        return db.session.query(TokenBlocklist.id).filter_by(jti=jti).scalar() is not None

    @jwt.expired_token_loader
    def expired_token_callback(jwt_header, jwt_payload):
        """處理 token 過期"""
        current_app.logger.warning(f"Expired token attempt from: {request.remote_addr}")
        return jsonify({
            'error': 'token_expired',
            'message': 'The token has expired. Please refresh your token or login again.'
        }), 401

    @jwt.invalid_token_loader
    def invalid_token_callback(error):
        """處理無效的 token"""
        current_app.logger.warning(f"Invalid token attempt from: {request.remote_addr}, error: {error}")
        return jsonify({
            'error': 'invalid_token',
            'message': 'Token validation failed. Please provide a valid token.'
        }), 401

    @jwt.unauthorized_loader
    def unauthorized_callback(error):
        """處理缺少 token"""
        current_app.logger.warning(f"Unauthorized access attempt from: {request.remote_addr}, error: {error}")
        return jsonify({
            'error': 'authorization_required',
            'message': 'Access token is required. Please provide an authorization token.'
        }), 401

    @jwt.revoked_token_loader
    def revoked_token_callback(jwt_header, jwt_payload):
        """處理已登出 (被撤銷) 的 token"""
        return jsonify({
            'error': 'token_revoked',
            'message': 'The token has been revoked. Please login again.'
        }), 401

# ============================================
# Application factory
# ============================================

def create_app(config_class=None):
    """
    建立 Flask app

    Args:
        config_class: 設定類別, 預設依 FLASK_ENV 選擇
    """
    app = Flask(__name__)
    config_class = config_class or get_config()
    config_class.validate()
    app.config.from_object(config_class)

    # ----- 擴展初始化 -----
    db.init_app(app)
    jwt.init_app(app)
    bcrypt.init_app(app)
    limiter.init_app(app)
    cors.init_app(app,
                  supports_credentials=True,
                  origins=app.config['CORS_ORIGINS'],
                  methods=['GET', 'POST', 'PATCH', 'DELETE', 'OPTIONS'],
                  allow_headers=['Content-Type', 'Authorization'])

    if not app.debug and not app.testing:
        setup_logging(app)

    register_jwt_callbacks()
    register_error_handlers(app)

    # ----- 註冊 Blueprints -----
    from auth import auth_bp
    from projects import projects_bp
    from tasks import tasks_bp
    from subtasks import subtasks_bp
    from tags import tags_bp
    from notifications import notifications_bp
    from schedules import schedules_bp

    app.register_blueprint(auth_bp, url_prefix='/auth')
    app.register_blueprint(projects_bp, url_prefix='/projects')
    app.register_blueprint(tasks_bp)
    app.register_blueprint(subtasks_bp)
    app.register_blueprint(tags_bp, url_prefix='/tags')
    app.register_blueprint(notifications_bp, url_prefix='/notifications')
    app.register_blueprint(schedules_bp, url_prefix='/schedules')

    from cli import register_commands
    register_commands(app)

    # ----- Request/Response Logging -----

    @app.before_request
    def log_request():
        """記錄每個請求"""
        if not app.debug:
            app.logger.info(f"Request: {request.method} {request.path} from {request.remote_addr}")

    @app.after_request
    def log_response(response):
        """記錄每個回應, 順便加上 security headers"""
        if not app.debug:
            app.logger.info(f"Response: {response.status_code} for {request.method} {request.path}")

        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'DENY'
        response.headers['X-XSS-Protection'] = '1; mode=block'
        return response

    # ----- Health Check -----

    @app.route('/health', methods=['GET'])
    @limiter.exempt
    def health_check():
        """
        健康檢查端點

        用於 load balancer 或監控系統檢查服務是否正常
        """
        try:
            db.session.execute(text('SELECT 1'))
            return jsonify({
                'status': 'healthy',
                'database': 'connected',
                'timestamp': datetime.utcnow().isoformat()
            }), 200
        except Exception as e:
            db.session.rollback()
            app.logger.error(f"Health check failed: {str(e)}")
            return jsonify({
                'status': 'unhealthy',
                'database': 'disconnected',
                'error': 'Database connection failed'
            }), 503

    # ----- API 首頁 -----

    @app.route('/')
    @limiter.limit("10 per minute")
    def home():
        """API 首頁 (endpoint 一覽)"""
        return jsonify({
            'message': 'Task & Schedule Manager API',
            'version': app.config['API_VERSION'],
            'endpoints': {
                'health': {'path': '/health', 'methods': ['GET']},
                'auth': {
                    'register': {'path': '/auth/register', 'methods': ['POST']},
                    'login': {'path': '/auth/login', 'methods': ['POST']},
                    'refresh': {'path': '/auth/refresh', 'methods': ['POST']},
                    'logout': {'path': '/auth/logout', 'methods': ['POST']},
                    'me': {'path': '/auth/me', 'methods': ['GET', 'PATCH']},
                    'preferences': {'path': '/auth/preferences', 'methods': ['GET', 'PATCH']}
                },
                'projects': {
                    'list': {'path': '/projects', 'methods': ['GET', 'POST']},
                    'detail': {'path': '/projects/:id', 'methods': ['GET', 'PATCH', 'DELETE']},
                    'members': {'path': '/projects/:id/members', 'methods': ['GET', 'POST']},
                    'stats': {'path': '/projects/:id/stats', 'methods': ['GET']}
                },
                'tasks': {
                    'list': {'path': '/tasks', 'methods': ['GET', 'POST']},
                    'detail': {'path': '/tasks/:id', 'methods': ['GET', 'PATCH', 'DELETE']},
                    'subtasks': {'path': '/tasks/:id/subtasks', 'methods': ['GET', 'POST']},
                    'comments': {'path': '/tasks/:id/comments', 'methods': ['GET', 'POST']},
                    'stats': {'path': '/tasks/stats/summary', 'methods': ['GET']}
                },
                'tags': {
                    'list': {'path': '/tags', 'methods': ['GET', 'POST']},
                    'popular': {'path': '/tags/popular', 'methods': ['GET']},
                    'detail': {'path': '/tags/:id', 'methods': ['GET', 'PATCH', 'DELETE']}
                },
                'notifications': {
                    'list': {'path': '/notifications', 'methods': ['GET', 'POST']},
                    'unread_count': {'path': '/notifications/unread-count', 'methods': ['GET']},
                    'mark_read': {'path': '/notifications/:id/read', 'methods': ['PATCH']}
                },
                'schedules': {
                    'daily': {'path': '/schedules/daily/:date', 'methods': ['GET', 'PATCH']},
                    'range': {'path': '/schedules/range', 'methods': ['GET']},
                    'items': {'path': '/schedules/items', 'methods': ['POST']},
                    'conflicts': {'path': '/schedules/conflicts/:date', 'methods': ['GET']},
                    'statistics': {'path': '/schedules/statistics/:date', 'methods': ['GET']}
                }
            },
            'rate_limits': {
                'default': '200 per hour, 1000 per day',
                'auth': {
                    'register': '5 per hour',
                    'login': '10 per minute'
                }
            }
        })

    # ----- 開發環境專用的 Debug Route -----

    if app.debug:
        @app.route('/debug/routes')
        def debug_routes():
            """列出所有註冊的路由 (僅開發環境)"""
            routes = [{
                'endpoint': rule.endpoint,
                'methods': sorted(rule.methods),
                'path': str(rule)
            } for rule in app.url_map.iter_rules()]
            return jsonify({'routes': routes})

    with app.app_context():
        db.create_all()
        app.logger.info('Database tables created')

    return app

# ============================================
# 啟動應用
# ============================================

if __name__ == '__main__':
    # production 環境應該用 gunicorn: gunicorn "app:create_app()"
    app = create_app()
    port = int(os.getenv('FLASK_PORT', 8888))
    app.run(debug=app.debug, port=port, host='0.0.0.0')
