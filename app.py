# app.py
"""
Entrypoint da aplicação.

Uso:
  python app.py migrate --db farmacia.db
  python app.py params show
  python app.py fornecedores adicionar --nome "Distribuidora Andina"
  python app.py entrada-lote nota.xlsx --nota NF-001 --fornecedor 1
  python app.py verificar
  python app.py pedidos gerar -f "Bayer=1"
  python app.py tui
"""

from farmacia.adapters.cli import main

if __name__ == "__main__":
    main()
