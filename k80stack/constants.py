"""
Constants used throughout the k80stack package.

This module contains the default manifests, directory names and other
fixed values used by the backup, install and verification components.
Import from here rather than hardcoding values elsewhere.
"""

from pathlib import Path

# Version info
VERSION = "0.1.0"
APP_NAME = "k80stack"

# Default paths
DEFAULT_CONFIG_DIR = Path.home() / ".k80stack"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.json"
DEFAULT_BACKUP_DIR = Path.home() / "TeslaK80-dependency-backups" / "backups"
DEFAULT_WORKSPACE_ROOT = Path.home()
DEFAULT_SYSTEM_ROOT = Path("/")

# Backup directory layout
PACKAGES_DIR_NAME = "packages"
IMAGES_DIR_NAME = "docker-images"
REPOSITORIES_DIR_NAME = "repositories"
MANIFEST_FILE_NAME = "manifest.json"
INFO_FILE_NAME = "backup-info.md"
PACKAGE_LIST_FILE_NAME = "packages.list"
MANIFEST_FORMAT_VERSION = 1

# APT locations, relative to the system root
APT_KEYRINGS_DIR = Path("etc/apt/keyrings")
APT_SOURCES_DIR = Path("etc/apt/sources.list.d")
DEFAULT_ARCHITECTURE = "amd64"

# Packages captured by a backup run (Ubuntu 22.04)
DEFAULT_PACKAGES = [
    "nvidia-driver-470",
    "cuda-toolkit-11-7",
    "docker-ce",
    "docker-ce-cli",
    "containerd.io",
    "nvidia-container-toolkit",
]

# Container images captured by a backup run
DEFAULT_IMAGES = [
    "nvidia/cuda:11.7.1-devel-ubuntu20.04",
    "pytorch/pytorch:1.13.1-cuda11.6-cudnn8-runtime",
    "tensorflow/tensorflow:2.11.0-gpu-jupyter",
    "codercom/code-server:latest",
]

DEFAULT_REGISTRY = "docker.io"
DEFAULT_TAG = "latest"

# Repository signing keys
KEY_KIND_KEYRING_PACKAGE = "keyring-package"
KEY_KIND_ARMORED = "armored-key"

DEFAULT_REPOSITORY_KEYS = [
    {
        "name": "cuda",
        "url": (
            "https://developer.download.nvidia.com/compute/cuda/repos/"
            "ubuntu2204/x86_64/cuda-keyring_1.0-1_all.deb"
        ),
        "filename": "cuda-keyring.deb",
        "kind": KEY_KIND_KEYRING_PACKAGE,
    },
    {
        "name": "docker",
        "url": "https://download.docker.com/linux/ubuntu/gpg",
        "filename": "docker.gpg",
        "kind": KEY_KIND_ARMORED,
        "keyring": "docker.gpg",
        "list_name": "docker.list",
        "source_line": (
            "deb [arch={arch} signed-by=/etc/apt/keyrings/docker.gpg] "
            "https://download.docker.com/linux/ubuntu {codename} stable"
        ),
    },
    {
        "name": "nvidia-container-toolkit",
        "url": "https://nvidia.github.io/libnvidia-container/gpgkey",
        "filename": "nvidia-container-toolkit.gpg",
        "kind": KEY_KIND_ARMORED,
        "keyring": "nvidia-container-toolkit.gpg",
        "list_name": "nvidia-container-toolkit.list",
        "source_line": (
            "deb [signed-by=/etc/apt/keyrings/nvidia-container-toolkit.gpg] "
            "https://nvidia.github.io/libnvidia-container/stable/ubuntu18.04/$(ARCH) /"
        ),
    },
]

# Installer package groups, in install order
DRIVER_PACKAGES = ["nvidia-driver-470", "nvidia-utils-470"]
CUDA_PACKAGES = ["cuda-toolkit-11-7"]
DOCKER_PACKAGES = [
    "docker-ce",
    "docker-ce-cli",
    "containerd.io",
    "docker-buildx-plugin",
    "docker-compose-plugin",
]
CONTAINER_TOOLKIT_PACKAGES = ["nvidia-container-toolkit"]

# Workspace directories, relative to the workspace root
WORKSPACE_DIRS = [
    "DockerVolumes",
    "Models",
    "Projects",
    "venvs",
    "ai-workspace/pytorch",
    "ai-workspace/tensorflow",
    "ai-workspace/jupyter",
    "ai-workspace/shared",
    "ai-workspace/datasets",
    "ai-workspace/models",
    "ai-workspace/projects",
]

# Host commands each operation depends on
CREATE_REQUIRED_COMMANDS = ["dpkg-query", "apt", "docker", "wget"]
RESTORE_REQUIRED_COMMANDS = ["dpkg", "apt-get", "docker", "gpg"]
INSTALL_REQUIRED_COMMANDS = ["apt-get", "dpkg", "wget", "gpg"]

# dpkg status string for a fully installed package
DPKG_INSTALLED_STATUS = "install ok installed"

# Verification
DEFAULT_PLAYBOOK = Path(__file__).parent / "playbooks" / "verify-setup.yml"
ANSIBLE_INVENTORY = "localhost,"
CHECK_CAPABILITIES = {
    "gpu": "NVIDIA Tesla K80 GPUs",
    "driver": "NVIDIA Driver 470",
    "cuda": "CUDA 11.7",
    "docker": "Docker with GPU support",
    "workspace": "Workspace directories",
}

# I/O
COPY_CHUNK_SIZE = 1024 * 1024  # 1 MB
