from flask_jwt_extended import JWTManager
from flask_bcrypt import Bcrypt
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_cors import CORS

# ============================================
# Flask 擴展 (在 create_app 裡 init_app)
# ============================================

jwt = JWTManager()
bcrypt = Bcrypt()
cors = CORS()

# storage / default limits 從 app.config 的 RATELIMIT_* 讀取
limiter = Limiter(key_func=get_remote_address)
