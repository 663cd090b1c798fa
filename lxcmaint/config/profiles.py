"""Built-in application profiles.

Each entry is validated into an ``AppProfile`` on load. ``{NAME}`` placeholders
are filled from profile variables, which can be overridden from the
environment (e.g. ``PHP_VERSION=8.2``).
"""

PROFILES = {
    'privatebin': {
        'name': 'privatebin',
        'display_name': 'PrivateBin',
        'marker': 'index.php',
        'source': {
            'type': 'tarball',
            'url': 'https://api.github.com/repos/PrivateBin/PrivateBin/tarball',
        },
        'preserve': [
            {'path': 'cfg/conf.php', 'kind': 'file', 'seed_from': 'cfg/conf.sample.php'},
            {'path': 'data', 'kind': 'dir', 'mode': 0o755},
        ],
        # Stopped in this order, started in reverse (php-fpm before nginx)
        'services': ['nginx', 'php{PHP_VERSION}-fpm'],
        'owner': 'www-data:www-data',
        'health': {'systemd': True, 'url': 'https://127.0.0.1/', 'verify_tls': False},
        'admin': {
            'purge': {
                'run': ['php', '{APP_DIR}/bin/administration', '--purge', '--empty-dirs'],
                'requires': 'bin/administration',
                'help': 'Remove expired pastes and empty directories',
            },
            'stats': {
                'run': ['php', '{APP_DIR}/bin/administration', '--statistics'],
                'requires': 'bin/administration',
                'help': 'Show paste statistics',
            },
        },
        'variables': {'PHP_VERSION': '8.4'},
    },
    'cryptpad': {
        'name': 'cryptpad',
        'display_name': 'CryptPad',
        'marker': 'server.js',
        'source': {
            'type': 'tarball',
            'url': 'https://api.github.com/repos/cryptpad/cryptpad/tarball',
        },
        'preserve': [
            {'path': 'config/config.js', 'kind': 'file', 'seed_from': 'config/config.example.js'},
            {'path': 'data', 'kind': 'dir'},
            {'path': 'customize', 'kind': 'dir'},
        ],
        'services': ['cryptpad'],
        'build': [
            {'name': 'install dependencies', 'run': ['npm', 'ci']},
            {'name': 'install components', 'run': ['npm', 'run', 'install:components']},
            {
                'name': 'reinstall OnlyOffice',
                'run': ['bash', 'install-onlyoffice.sh', '--accept-license'],
                'if_exists': 'install-onlyoffice.sh',
                'if_previous_exists': 'www/common/onlyoffice',
            },
            {'name': 'build', 'run': ['npm', 'run', 'build']},
        ],
        'health': {'systemd': True, 'url': 'http://127.0.0.1:{APP_PORT}/'},
        'variables': {'APP_PORT': '3000'},
    },
    'docmost': {
        'name': 'docmost',
        'display_name': 'Docmost',
        'marker': 'package.json',
        'source': {'type': 'github_release', 'repo': 'docmost/docmost'},
        'preserve': [
            {'path': '.env', 'kind': 'file'},
            {'path': 'data', 'kind': 'dir'},
        ],
        'services': ['docmost'],
        'build': [
            {
                'name': 'install dependencies',
                'run': ['pnpm', 'install', '--force'],
                'env': {'NODE_OPTIONS': '--max_old_space_size={NODE_MEMORY_MB}'},
            },
            {
                'name': 'build',
                'run': ['pnpm', 'build'],
                'env': {'NODE_OPTIONS': '--max_old_space_size={NODE_MEMORY_MB}'},
            },
        ],
        'health': {'systemd': True, 'url': 'http://127.0.0.1:{APP_PORT}/'},
        'variables': {'APP_PORT': '3000', 'NODE_MEMORY_MB': '4096'},
    },
}
