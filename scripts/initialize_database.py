import os
import sys

import duckdb
import pandas as pd

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from bc2notion.database.progress_store import TABLES, ProgressStore

# Define o caminho para o banco de dados de progresso
db_path = os.getenv("PROGRESS_DB", "data/progress.duckdb")


def initialize_database():
    """
    Inicializa o banco de dados de progresso (projects, tools, items)
    e mostra o estado atual de cada tabela.
    """
    # Cria o arquivo e as tabelas se ainda não existirem
    store = ProgressStore(db_path)
    store.close()

    con = duckdb.connect(database=db_path, read_only=True)
    try:
        for table in TABLES:
            df: pd.DataFrame = con.execute(f"SELECT status, COUNT(*) AS total FROM {table} GROUP BY status").df()
            if df.empty:
                print(f"Tabela '{table}': vazia.")
                continue
            print(f"Tabela '{table}':")
            print(df.to_string(index=False))
    except duckdb.Error as e:
        print(f"Ocorreu um erro: {e}")
    finally:
        # Fecha a conexão com o banco de dados
        con.close()
        print("Conexão com o banco de dados fechada.")


if __name__ == "__main__":
    initialize_database()
