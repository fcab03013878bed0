"""
Rewards engine entry point.
"""
import os
import sys
import traceback

print("[Rewards] ========================================")
print("[Rewards] Starting rewards engine")
print("[Rewards] ========================================")

config_name = os.getenv('FLASK_ENV', 'production')
print(f"[Rewards] Config: {config_name}")
print(f"[Rewards] PORT: {os.getenv('PORT', 'not set')}")
print(f"[Rewards] DATABASE_URL: {'set' if os.getenv('DATABASE_URL') else 'NOT SET'}")

try:
    from rewards import create_app
    app = create_app(config_name)
    print(f"[Rewards] App created, {len(list(app.url_map.iter_rules()))} routes")
except Exception as e:
    print(f"[Rewards] FATAL ERROR during app creation: {e}")
    traceback.print_exc()
    sys.exit(1)

if __name__ == '__main__':
    app.run(
        host='0.0.0.0',
        port=int(os.getenv('PORT', 5000)),
        debug=os.getenv('FLASK_ENV') == 'development'
    )
