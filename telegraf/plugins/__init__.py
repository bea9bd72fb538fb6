"""Plugin interfaces, the plugin registry and the system, memcached, redis, mysql and kafka plugins."""