# run.py

from app import create_app # Importa la función de fábrica
import os

# Lee la configuración del entorno o usa 'development' por defecto
config_name = os.environ.get('FLASK_CONFIG', 'development')
app = create_app(config_name)

if __name__ == '__main__':
    port = int(os.environ.get('PORT', 4000))
    app.run(debug=app.config.get('DEBUG', False), port=port)
