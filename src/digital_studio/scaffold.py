"""Static Vite + React + Tailwind boilerplate merged around the generated artifacts."""

import json
import re

from .models import ArtifactMap

APP_PATH = "src/App.jsx"

FALLBACK_APP = """import React from 'react';

export default function App() {
  return (
    <main className="min-h-screen flex items-center justify-center bg-gray-50 text-gray-700">
      <div className="text-center space-y-2">
        <h1 className="text-2xl font-semibold">Your app is ready</h1>
        <p>No pages were identified in the design. Add components under src/pages to get started.</p>
      </div>
    </main>
  );
}
"""

_VITE_CONFIG = """import { defineConfig } from 'vite'
import react from '@vitejs/plugin-react'

// https://vitejs.dev/config/
export default defineConfig({
  plugins: [react()],
})"""

_TAILWIND_CONFIG = """/** @type {import('tailwindcss').Config} */
export default {
  content: [
    "./index.html",
    "./src/**/*.{js,ts,jsx,tsx}",
  ],
  theme: {
    extend: {},
  },
  plugins: [],
}"""

_POSTCSS_CONFIG = """export default {
  plugins: {
    tailwindcss: {},
    autoprefixer: {},
  },
}"""

_VITE_SVG = (
    '<svg xmlns="http://www.w3.org/2000/svg" width="256" height="256" viewBox="0 0 256 256">'
    '<path fill="#646cff" d="M249.6 139.5c-4.2-13.4-12.7-25.2-25.7-34.9-10.3-7.7-22.3-13.3-35.6-16.5-13.8-3.3-28.3-3.2-42.2.3'
    "-13.1 3.3-25.4 9.3-36.1 17.6-12.6 9.8-22.3 22.9-28.3 38.3-6.3 16.2-7.8 33.9-4.5 51.1 2.8 14.8 9.3 28.7 18.8 40.8 9.3 11.9 21.4"
    ' 21.2 35.2 27.2 14.3 6.2 30 8.8 45.4 7.2 15.9-1.6 31.1-7.9 44.2-18.1 13.3-10.4 23.9-24.1 30.6-40C255.7 172.3 254.5 154.5 249.6 139.5Z"/>'
    "</svg>"
)

_MAIN_JSX = """import React from 'react'
import ReactDOM from 'react-dom/client'
import App from './App.jsx'
import './index.css'
import { BrowserRouter } from 'react-router-dom'

ReactDOM.createRoot(document.getElementById('root')).render(
  <React.StrictMode>
    <BrowserRouter>
      <App />
    </BrowserRouter>
  </React.StrictMode>,
)"""

_INDEX_CSS = """@tailwind base;
@tailwind components;
@tailwind utilities;"""

_ESLINT_CONFIG = {
    "root": True,
    "env": {"browser": True, "es2020": True},
    "extends": [
        "eslint:recommended",
        "plugin:react/recommended",
        "plugin:react/jsx-runtime",
        "plugin:react-hooks/recommended",
    ],
    "ignorePatterns": ["dist", ".eslintrc.cjs"],
    "parserOptions": {"ecmaVersion": "latest", "sourceType": "module"},
    "settings": {"react": {"version": "18.2"}},
    "plugins": ["react-refresh"],
    "rules": {"react-refresh/only-export-components": ["warn", {"allowConstantExport": True}]},
}


def slugify(project_name: str) -> str:
    """npm-compatible package name: lowercase, whitespace and unsafe characters become dashes."""
    slug = re.sub(r"[^a-z0-9._-]+", "-", project_name.strip().lower()).strip("-.")
    return slug or "react-project"


def _package_json(project_name: str) -> str:
    package = {
        "name": slugify(project_name),
        "private": True,
        "version": "0.0.0",
        "type": "module",
        "scripts": {
            "dev": "vite",
            "build": "vite build",
            "lint": "eslint . --ext js,jsx --report-unused-disable-directives --max-warnings 0",
            "preview": "vite preview",
        },
        "dependencies": {
            "react": "^18.2.0",
            "react-dom": "^18.2.0",
            "react-router-dom": "^6.22.3",
        },
        "devDependencies": {
            "@types/react": "^18.2.66",
            "@types/react-dom": "^18.2.22",
            "@vitejs/plugin-react": "^4.2.1",
            "autoprefixer": "^10.4.19",
            "eslint": "^8.57.0",
            "eslint-plugin-react": "^7.34.1",
            "eslint-plugin-react-hooks": "^4.6.0",
            "eslint-plugin-react-refresh": "^0.4.6",
            "postcss": "^8.4.38",
            "tailwindcss": "^3.4.3",
            "vite": "^5.2.0",
        },
    }
    return json.dumps(package, indent=2)


def _index_html(project_name: str) -> str:
    return f"""<!DOCTYPE html>
<html lang="en">
  <head>
    <meta charset="UTF-8" />
    <link rel="icon" type="image/svg+xml" href="/vite.svg" />
    <meta name="viewport" content="width=device-width, initial-scale=1.0" />
    <title>{project_name}</title>
  </head>
  <body>
    <div id="root"></div>
    <script type="module" src="/src/main.jsx"></script>
  </body>
</html>"""


def _readme(project_name: str) -> str:
    return f"# {project_name}\n\nThis project was generated by Digital Studio.\n\n## Setup\n\n1. `npm install`\n2. `npm run dev`\n"


def template_files(project_name: str) -> ArtifactMap:
    """Boilerplate files that every generated project ships with."""
    return {
        "package.json": _package_json(project_name),
        "vite.config.js": _VITE_CONFIG,
        "tailwind.config.js": _TAILWIND_CONFIG,
        "postcss.config.js": _POSTCSS_CONFIG,
        ".eslintrc.json": json.dumps(_ESLINT_CONFIG, indent=2),
        "README.md": _readme(project_name),
        "public/vite.svg": _VITE_SVG,
        "index.html": _index_html(project_name),
        "src/main.jsx": _MAIN_JSX,
        "src/index.css": _INDEX_CSS,
    }


def assemble_project(project_name: str, artifacts: ArtifactMap) -> ArtifactMap:
    """Merge generated artifacts with the boilerplate.

    Template files own the bootstrap paths (manifest, build config, entry HTML,
    main.jsx); every other generated path is kept as-is.
    """
    files = dict(artifacts)
    files.update(template_files(project_name))
    files.setdefault(APP_PATH, FALLBACK_APP)
    return files
