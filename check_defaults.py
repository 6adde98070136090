import os
import argparse

env_file_path = './.env'
default_env = {
    'HOST': '127.0.0.1',
    'PORT': '5000',
    'APP_LOG_LEVEL': 'INFO',
    'FLASK_LOG_LEVEL': 'WARNING',
    'DATABASE_URL': 'sqlite:///data.db',
    'LORE_SIZE_FUNCTION': 'estimate',
    'LORE_HISTORY_DEPTH': '4',
}

parser = argparse.ArgumentParser(description="Writes missing default settings to the .env file.")
parser.add_argument('--force', action='store_true', help="Overwrite existing settings with the defaults.")
args = parser.parse_args()

lines = []
if os.path.exists(env_file_path):
    with open(env_file_path, 'r', encoding='utf-8') as f:
        lines = f.readlines()

present = {}
for i, line in enumerate(lines):
    key = line.split('=', 1)[0].strip()
    if key in default_env:
        present[key] = i

changed = False
for key, value in default_env.items():
    if key in present:
        if args.force:
            print(f"Force flag set. Resetting {key} in {env_file_path}")
            lines[present[key]] = f"{key}={value}\n"
            changed = True
        continue
    print(f"{key} not found in {env_file_path}. Adding default.")
    if lines and not lines[-1].endswith('\n'):
        lines[-1] += '\n'
    lines.append(f"{key}={value}\n")
    changed = True

if changed:
    with open(env_file_path, 'w', encoding='utf-8') as f:
        f.writelines(lines)
else:
    print(f"All settings already exist in {env_file_path}. Use --force to overwrite.")
