"""Docker Compose descriptor generation and compose command helpers."""

import shlex

COMPOSE_FILENAME = "docker-compose.yml"

WORDPRESS_IMAGE = "wordpress:php8.2-apache"
WP_CLI_IMAGE = "wordpress:cli-php8.2"
DB_IMAGE = "mariadb:11"

# Path of the WordPress install inside the wordpress and cli containers
WP_ROOT = "/var/www/html"


def container_name(project_name, service):
    """Container name for a compose service, e.g. demo_wordpress."""
    return f"{project_name}_{service}"


def compose_cmd(compose_file, *args):
    """Build a ``docker compose -f <file> ...`` invocation. Args must already be shell-safe."""
    return " ".join(["docker compose -f", shlex.quote(compose_file), *args])


def generate_compose(site):
    """Build docker-compose.yml for one site.

    Three services share a network: ``db`` (MariaDB), ``wordpress`` (Apache,
    published on the site's port) and ``cli`` (WP-CLI sidecar kept idle for
    one-shot admin commands). wordpress and cli mount the same volume, so
    files the CLI writes are served immediately.
    """
    project = site.project_name
    db_name = site.db_name
    db_password = site.db_password

    return f"""services:
  db:
    image: {DB_IMAGE}
    container_name: {container_name(project, "db")}
    restart: unless-stopped
    environment:
      MARIADB_DATABASE: "{db_name}"
      MARIADB_USER: "wordpress"
      MARIADB_PASSWORD: "{db_password}"
      MARIADB_ROOT_PASSWORD: "{db_password}"
    volumes:
      - db_data:/var/lib/mysql
    healthcheck:
      test: ["CMD", "healthcheck.sh", "--connect", "--innodb_initialized"]
      interval: 5s
      timeout: 5s
      retries: 20
      start_period: 10s

  wordpress:
    image: {WORDPRESS_IMAGE}
    container_name: {container_name(project, "wordpress")}
    restart: unless-stopped
    depends_on:
      db:
        condition: service_healthy
    ports:
      - "{site.wp_port}:80"
    environment:
      WORDPRESS_DB_HOST: "db:3306"
      WORDPRESS_DB_NAME: "{db_name}"
      WORDPRESS_DB_USER: "wordpress"
      WORDPRESS_DB_PASSWORD: "{db_password}"
    volumes:
      - wp_data:{WP_ROOT}
    healthcheck:
      test: ["CMD-SHELL", "curl -fs -o /dev/null http://localhost/ || exit 1"]
      interval: 5s
      timeout: 5s
      retries: 20
      start_period: 10s

  cli:
    image: {WP_CLI_IMAGE}
    container_name: {container_name(project, "cli")}
    user: "33:33"
    working_dir: {WP_ROOT}
    depends_on:
      wordpress:
        condition: service_started
    command: ["tail", "-f", "/dev/null"]
    environment:
      WORDPRESS_DB_HOST: "db:3306"
      WORDPRESS_DB_NAME: "{db_name}"
      WORDPRESS_DB_USER: "wordpress"
      WORDPRESS_DB_PASSWORD: "{db_password}"
    volumes:
      - wp_data:{WP_ROOT}
    healthcheck:
      test: ["CMD-SHELL", "test -f {WP_ROOT}/wp-config.php && wp core version"]
      interval: 5s
      timeout: 10s
      retries: 20
      start_period: 10s

volumes:
  db_data:
  wp_data:
"""
